"""stackwire - declarative resource composition and custom-provisioning bridge."""

__version__ = "0.1.0"
