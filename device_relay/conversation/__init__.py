"""
conversation：指令目录、参数收集状态机与菜单布局。
"""
