"""
baidupan-cli: turns public Baidu Netdisk share links into direct download links
using a pool of borrowed session credentials.
"""

__version__ = "0.3.0"
