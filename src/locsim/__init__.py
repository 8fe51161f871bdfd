"""
LocSim: keeps a simulated location active on iOS 17+ devices by supervising
pymobiledevice3's tunnel daemon and its DVT simulate-location process.
"""

__version__ = "0.1.0"
