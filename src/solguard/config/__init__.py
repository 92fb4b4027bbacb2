"""Configuration: known programs/mints (known_programs) and toolkit settings (settings)."""
