__version__ = "0.4.2"
__author__ = "Update Manager Contributors"
