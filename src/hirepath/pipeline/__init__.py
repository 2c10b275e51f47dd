"""
求职流水线：阶段间类型、阶段依赖与五个阶段实现。编排见 hirepath.workflow。
"""
