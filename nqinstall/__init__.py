"""nqinstall — interactive installer and updater for the NQRust Analytics stack."""

__version__ = "0.3.1"
