"""
contra-exec
Job execution worker: runs a control script against an unpacked data bundle
and archives whatever files the script added or changed
"""

__version__ = "0.1.0"
