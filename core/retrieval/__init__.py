"""
检索模块

基于向量索引的帧检索：语义搜索、最近帧、按应用过滤、应用使用统计
"""

from .frame_search import FrameSearch

__all__ = [
    "FrameSearch",
]
