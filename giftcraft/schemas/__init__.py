"""Pydantic 模型"""
