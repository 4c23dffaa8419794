"""Domain services for ParkingDirekt."""
