"""
Small talk and the free-form fallback.
"""

import logging

from ...errors import MalformedResponse, UpstreamUnavailable
from ...llm.prompts import get_system_prompt
from .. import replies
from ..intents import AFFIRMATION_RE, GREETING_RE, QUESTION_RE, THANKS_RE
from ..router import HandlerContext, HandlerResult, declined
from ..state import Mood

logger = logging.getLogger(__name__)

FRUSTRATED_HINT = (
    "The user seems frustrated. Apologize briefly and keep the answer short and concrete."
)


async def handle_mood(ctx: HandlerContext) -> HandlerResult:
    text = ctx.message.strip()
    if GREETING_RE.search(text):
        response = replies.GREETING
    elif THANKS_RE.search(text):
        response = replies.THANKS
    elif AFFIRMATION_RE.search(text):
        response = replies.AFFIRMATION
    elif QUESTION_RE.search(text):
        response = replies.CAPABILITIES
    else:
        return declined()

    ctx.state.set_status("Ready", 100)
    return HandlerResult(response=response)


async def handle_normal_response(ctx: HandlerContext) -> HandlerResult:
    if not ctx.services.llm_enabled:
        ctx.state.set_status("Ready", 100)
        return HandlerResult(response=replies.OFFLINE_CHAT_REPLY)

    ctx.state.set_status("Thinking...", 50)
    system_prompt = get_system_prompt(ctx.today)
    if ctx.state.mood == Mood.FRUSTRATED:
        system_prompt += "\n\n" + FRUSTRATED_HINT

    history = ctx.state.history(ctx.services.config.conversation.history_window)
    if not history or history[-1] != {"role": "user", "content": ctx.message}:
        history.append({"role": "user", "content": ctx.message})
    messages = [{"role": "system", "content": system_prompt}] + history

    try:
        reply = await ctx.services.llm_client.chat(
            messages, temperature=ctx.services.config.llm.temperature
        )
    except MalformedResponse as e:
        logger.warning("Chat reply unusable: %s", e)
        reply = ""
    except UpstreamUnavailable as e:
        logger.warning("Chat request failed: %s", e)
        ctx.state.set_status("Error")
        return HandlerResult(response=replies.fallback_response(e))

    ctx.state.set_status("Ready", 100)
    return HandlerResult(response=reply.strip() or replies.EMPTY_CHAT_REPLY)
