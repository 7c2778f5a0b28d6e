"""giftcraft - 礼物项目编辑器的项目状态与持久化同步引擎"""

__version__ = "0.1.0"
