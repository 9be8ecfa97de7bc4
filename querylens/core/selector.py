import asyncio
import logging
from typing import Optional

from querylens.core.config import SelectionConfig
from querylens.core.conversation import Conversation
from querylens.core.engine import ConversationEngine
from querylens.core.models import CandidateResult, ModelParams
from querylens.core.tools import (
    PerformanceSchemaQueryTool,
    SelectionAccumulator,
    SubmitSelectionTool,
    ToolRegistry,
)
from querylens.prompts.selection import build_selection_prompt
from querylens.utils.formatting import conversation_to_markdown

logger = logging.getLogger(__name__)


class CandidateSelector:
    def __init__(
        self,
        engine: ConversationEngine,
        statistics_tool: PerformanceSchemaQueryTool,
        config: Optional[SelectionConfig] = None,
    ):
        self.engine = engine
        self.statistics_tool = statistics_tool
        self.config = config or SelectionConfig()

    async def select_candidates(self, special_instructions: Optional[str] = None) -> CandidateResult:
        """
        Let the model explore statement statistics and submit groups of
        expensive queries. A session without any submission is valid and
        yields no groups.
        """
        accumulator = SelectionAccumulator()
        tools = ToolRegistry([self.statistics_tool, SubmitSelectionTool(accumulator)])
        params = ModelParams(
            model=self.config.model,
            temperature=self.config.temperature,
            max_tokens=self.config.max_tokens,
        )

        conversation = Conversation.from_prompt(build_selection_prompt(special_instructions))
        conversation = await self.engine.run_async(conversation, tools, params)

        groups = accumulator.groups()
        logger.info(f"Selection finished with {len(groups)} group(s)")

        return CandidateResult(
            description=conversation.last_text or "",
            groups=groups,
            conversation=conversation,
            formatted_conversation=conversation_to_markdown(conversation),
        )

    def select_candidates_sync(self, special_instructions: Optional[str] = None) -> CandidateResult:
        return asyncio.run(self.select_candidates(special_instructions))
