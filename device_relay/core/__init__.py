"""
core：设备注册表、指令编解码、投递、事件泵、配置与上下文。
"""
