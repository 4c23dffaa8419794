"""Admin control-center routes (SUPER_ADMIN only)."""
