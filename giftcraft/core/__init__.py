"""核心配置：设置、日志、数据库、异常"""
