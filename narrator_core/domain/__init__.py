"""领域层模型与协议。

包含：
- models: 消息、端点配置、解析结果与 AIReply 模型。
- conversation: 单局故事的会话状态（StorySession）。
- exceptions: 业务异常类型定义。
"""
