"""
Claude Service - Anthropic Claude API ラッパー
AIエージェントキャラクターの投票判断（AI_VOTE_POLICY=claude）に使用する。
"""
import json
import logging
import re

import anthropic
import gevent

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
RETRY_DELAY = 1  # seconds


class ClaudeService:
    """Anthropic Claude API とのやり取りを管理するサービス"""

    def __init__(self, api_key: str, model: str = "claude-sonnet-4-20250514"):
        self.api_key = api_key
        self.model = model
        self._client = None

    @property
    def client(self):
        if self._client is None and self.api_key:
            self._client = anthropic.Anthropic(api_key=self.api_key)
        return self._client

    def send_message(self, content: str, system_prompt: str = None, max_tokens: int = 512) -> str:
        """
        Claude Messages API を呼び出してレスポンスを返す。

        Args:
            content: ユーザーメッセージ
            system_prompt: システムプロンプト（任意）
            max_tokens: 最大出力トークン数
        Returns:
            レスポンステキスト。エラー時は None。
        """
        if not self.client:
            logger.warning("Claude: APIキーが未設定のためスキップ")
            return None

        kwargs = {
            "model": self.model,
            "max_tokens": max_tokens,
            "messages": [{"role": "user", "content": content}],
        }
        if system_prompt:
            kwargs["system"] = system_prompt

        for attempt in range(1, MAX_RETRIES + 1):
            try:
                response = self.client.messages.create(**kwargs)
                return response.content[0].text
            except anthropic.RateLimitError:
                logger.warning("Claude: レート制限 (attempt %d/%d)", attempt, MAX_RETRIES)
                if attempt < MAX_RETRIES:
                    gevent.sleep(RETRY_DELAY * attempt)
            except anthropic.APIError as e:
                logger.error("Claude API エラー (attempt %d/%d): %s", attempt, MAX_RETRIES, e)
                if attempt < MAX_RETRIES:
                    gevent.sleep(RETRY_DELAY * attempt)

        logger.error("Claude: 最大リトライ回数に到達")
        return None

    def query_json(self, content: str, system_prompt: str = None) -> dict:
        """JSON形式のレスポンスを辞書として返す。取得・解析できなければ空辞書"""
        return self._parse_json(self.send_message(content, system_prompt))

    @staticmethod
    def _parse_json(text: str) -> dict:
        """レスポンステキストからJSONを取り出す（コードブロック・前後の説明文を許容）"""
        if not text:
            return {}

        try:
            return json.loads(text)
        except json.JSONDecodeError:
            pass

        try:
            match = re.search(r"```(?:json)?\s*\n?(.*?)\n?```", text, re.DOTALL)
            if match:
                return json.loads(match.group(1).strip())
        except json.JSONDecodeError:
            pass

        try:
            match = re.search(r"\{.*\}", text, re.DOTALL)
            if match:
                return json.loads(match.group(0))
        except json.JSONDecodeError:
            pass

        return {}
