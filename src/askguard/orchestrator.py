"""Request orchestration for a single user question.

Order per question: local admission check, valid credential, network call,
usage accounting. A denied question never reaches the network and is never
counted.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from .auth.service import TokenManager
from .config import GuardConfig
from .errors import AdmissionDeniedError, AskGuardError
from .quota.governor import QuotaGovernor
from .quota.models import ToolsUsed

logger = logging.getLogger(__name__)


class RequestOrchestrator:
    """Single call site that ties the quota governor to the token manager.

    Example:
        >>> orchestrator = RequestOrchestrator(tokens, governor, config)
        >>> answer = await orchestrator.ask('session-1', 'What is a refresh token?')
        >>> print(answer['answer'])
    """

    def __init__(self, tokens: TokenManager, governor: QuotaGovernor, config: Optional[GuardConfig] = None):
        self.tokens = tokens
        self.governor = governor
        self.config = config or tokens.config

    async def ask(
        self,
        session_id: str,
        question: str,
        context: str = '',
        tools_used: Optional[ToolsUsed] = None,
    ) -> Dict[str, Any]:
        """Send a question through the gateway.

        Args:
            session_id: Backend session the question belongs to
            question: The user's question
            context: System instruction and knowledge text sent along with it, used
                only for the token estimate
            tools_used: Tools the request is expected to use, counted on success

        Returns:
            The gateway's data payload (contains at least 'answer')

        Raises:
            AdmissionDeniedError: If the local quota would be exceeded
            NotAuthenticatedError, RefreshFailedError, UnauthorizedError: On auth failures
            AskGuardError: If the gateway reports a failure
        """
        tier, model = self.config.tier, self.config.model
        prompt = context + question

        if self.config.enforce_rate_limit:
            decision = await self.governor.check_admission(tier, model, self.governor.estimate_tokens(prompt))
            if not decision.allowed:
                raise AdmissionDeniedError(decision)

        response = await self.tokens.authenticated_request(
            'POST', '/gateway/ask', json={'sessionId': session_id, 'question': question}
        )
        try:
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPStatusError, ValueError) as e:
            raise AskGuardError(f'Gateway request failed: {e}', 'GATEWAY_ERROR') from e

        if not isinstance(payload, dict) or not payload.get('success'):
            error = payload.get('error') if isinstance(payload, dict) else None
            raise AskGuardError(error or 'Gateway request failed', 'GATEWAY_ERROR')

        data = payload.get('data') or {}
        answer = str(data.get('answer', ''))

        # The gateway does not report token usage, so count prompt and answer by estimate
        actual_tokens = self.governor.estimate_tokens(prompt + answer)
        await self.governor.record_usage(actual_tokens, tools_used)
        logger.info(f'Question answered for session {session_id} (~{actual_tokens} tokens recorded)')
        return data
