"""
@PURPOSE: 命令行入口包
"""
