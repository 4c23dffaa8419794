"""HTTP API for ParkingDirekt."""
