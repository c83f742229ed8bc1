"""
channel：操作员控制通道（抽象接口、容错包装、飞书实现与事件解析）。
"""
