"""
device_relay：单操作员通过飞书机器人向多台在线设备下发指令的中继服务。
"""

__version__ = '1.0.0'
