"""业务服务：项目 Store、自动保存、持久化 / 校验 / 媒体网关"""
