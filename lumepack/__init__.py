"""Build, configure, and export lume virtual machine images."""

__version__ = '0.1.0'
