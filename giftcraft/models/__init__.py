"""ORM 模型"""
