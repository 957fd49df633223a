"""
Prompts Module - Prompt templates for grounded and general generation.
======================================================================

Four named templates:
- Grounded: answer from the assembled library context, with optional
  <think>…</think> deliberation before the final answer
- General: answer from the model's own knowledge
- Extraction: pull question-relevant facts out of one round of fragments
- Synthesis: combine the per-round extractions into one answer
"""

from typing import Optional

from library_rag.shared.config import GenerationConfig, get_settings
from library_rag.shared.logging import get_logger

logger = get_logger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Templates
# ─────────────────────────────────────────────────────────────────────────────


GROUNDED_PROMPT_TEMPLATE = """你是一个专业的图书馆智能助手。请基于以下提供的文档内容回答用户的问题。

文档内容：
{context}

用户问题：{question}

请遵循以下规则：
1. 仔细分析文档内容，包括直接陈述和间接表述
2. 只根据文档内容作答，不要编造文档中不存在的事实
3. 如果文档中确实没有相关信息，请明确回答"文档中没有找到相关信息"
4. 回答要准确、简洁、有条理，尽量引用具体的文档内容
5. 可以先在<think>标签中写出思考过程，然后在</think>标签后给出正式答案
6. 格式要求：
   - 使用清晰的段落结构，要点之间用空行分隔
   - 使用序号（1. 2. 3.）或项目符号（- ）组织列表
   - 重要概念用**粗体**标记，代码或技术术语用`反引号`标记

回答："""


GENERAL_PROMPT_TEMPLATE = """请回答以下问题，提供准确、有用的信息：

问题：{question}

请用中文回答，并保持回答的准确性和实用性。"""


EXTRACTION_PROMPT_TEMPLATE = """请从以下文档内容中提取与问题相关的关键信息：

文档内容：
{context}

问题：{question}

请提取：
1. 直接相关的事实和数据
2. 间接相关的信息和线索
3. 可能有用的背景信息

如果没有相关信息，请回答"{no_info_marker}"。

提取的信息："""


SYNTHESIS_PROMPT_TEMPLATE = """基于以下提取的信息片段，请综合回答用户的问题：

信息片段：
{extracted_info}

用户问题：{question}

请提供一个完整、准确的回答。如果信息不足，请明确说明。

回答："""


SEGMENT_LABEL = "片段 {index}："


# ─────────────────────────────────────────────────────────────────────────────
# Prompt Builder
# ─────────────────────────────────────────────────────────────────────────────


class PromptBuilder:
    """
    Fills the templates.

    Example:
        >>> builder = PromptBuilder()
        >>> prompt = builder.build_grounded_prompt("MySQL默认端口是多少？", context.text)
    """

    def __init__(self, config: Optional[GenerationConfig] = None):
        self.config = config or get_settings().generation

    def build_grounded_prompt(self, question: str, context: str) -> str:
        return GROUNDED_PROMPT_TEMPLATE.format(context=context, question=question)

    def build_general_prompt(self, question: str) -> str:
        return GENERAL_PROMPT_TEMPLATE.format(question=question)

    def build_extraction_prompt(self, question: str, context: str) -> str:
        return EXTRACTION_PROMPT_TEMPLATE.format(
            context=context,
            question=question,
            no_info_marker=self.config.no_info_marker,
        )

    def build_synthesis_prompt(self, question: str, extractions: list[str]) -> str:
        """Label each extraction "片段 N：" and join them with blank lines."""
        extracted_info = "\n\n".join(
            SEGMENT_LABEL.format(index=i) + "\n" + text
            for i, text in enumerate(extractions, 1)
        )
        return SYNTHESIS_PROMPT_TEMPLATE.format(extracted_info=extracted_info, question=question)
