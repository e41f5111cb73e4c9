"""core/ -- Kernel layer (configuration). Imports nothing from the other packages."""
