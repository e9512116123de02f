"""herdmail: local SMTP capture server for development mail testing"""

__version__ = "1.0.0"
