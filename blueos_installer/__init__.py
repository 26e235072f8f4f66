"""BlueOS Installer — provision a bare device into a running BlueOS stack."""

__version__ = "0.1.0"
