import json
import logging
import urllib.error
import urllib.request
from typing import Any, Dict, List, Optional

from google import genai
from google.genai import types

from goalcoach.config import Settings
from goalcoach.errors import DelegateError
from goalcoach.models import Message, Persona, Plan, Role
from goalcoach.prompts import ACHIEVEMENT_SUMMARY_PROMPT, PLAN_PROMPT

logger = logging.getLogger(__name__)


class LLMClient:
    """Thin chat-completion wrapper over the Gemini API.

    Returns "" on any failure so callers can decide how to degrade.
    """

    def __init__(self, settings: Settings):
        self.api_key = settings.gemini_api_key
        self.model = settings.gemini_model
        self.client = None
        if not self.api_key:
            logger.warning("[Gemini] GEMINI_API_KEY not configured; completions will be empty.")
        else:
            self.client = genai.Client(api_key=self.api_key)

    def chat_completion(
        self,
        messages: List[Dict[str, str]],
        model: Optional[str] = None,
        json_mode: bool = False,
        temperature: float = 0.7,
    ) -> str:
        if self.client is None:
            return ""

        model = model or self.model
        system_instruction = None
        contents = []

        for msg in messages:
            if msg["role"] == "system":
                if system_instruction is None:
                    system_instruction = msg["content"]
                else:
                    system_instruction += "\n\n" + msg["content"]
            elif msg["role"] == "user":
                contents.append(types.Content(role="user", parts=[types.Part.from_text(text=msg["content"])]))
            elif msg["role"] == "assistant":
                contents.append(types.Content(role="model", parts=[types.Part.from_text(text=msg["content"])]))

        is_gemma = "gemma" in model
        if json_mode and is_gemma:
            note = "IMPORTANT: Output ONLY valid JSON. No Markdown. No explanations."
            system_instruction = f"{system_instruction}\n\n{note}" if system_instruction else note

        # Gemma rejects system_instruction in config; fold it into the first user turn.
        if is_gemma and system_instruction:
            first_user = next((c for c in contents if c.role == "user"), None)
            if first_user is not None:
                original_text = first_user.parts[0].text
                first_user.parts[0].text = f"System Instruction:\n{system_instruction}\n\nUser Message:\n{original_text}"
            else:
                contents.insert(0, types.Content(role="user", parts=[types.Part.from_text(text=f"System Instruction:\n{system_instruction}")]))
            system_instruction = None

        config = types.GenerateContentConfig(
            temperature=temperature,
            system_instruction=system_instruction,
        )
        if json_mode and not is_gemma:
            config.response_mime_type = "application/json"

        try:
            response = self.client.models.generate_content(model=model, contents=contents, config=config)
        except Exception as e:
            logger.error("[Gemini] generate_content failed: %s", e)
            return ""

        if not response.text:
            logger.warning("[Gemini] Blocked response or empty text.")
            return ""

        text = response.text.strip()
        if json_mode:
            # Strip Markdown fences the model adds despite instructions.
            if text.startswith("```json"):
                text = text[7:]
            if text.startswith("```"):
                text = text[3:]
            if text.endswith("```"):
                text = text[:-3]
            text = text.strip()
        return text


def _history_to_messages(history: List[Message]) -> List[Dict[str, str]]:
    return [{"role": m.role.value, "content": m.content} for m in history]


class GeminiCoach:
    """Coach delegate backed by a hosted model."""

    def __init__(self, settings: Settings, client: Optional[LLMClient] = None):
        self.llm_client = client or LLMClient(settings)

    def generate_reply(self, history: List[Message], persona: Persona) -> str:
        messages = [{"role": Role.SYSTEM.value, "content": persona.system_prompt}]
        messages.extend(_history_to_messages(history))
        reply = self.llm_client.chat_completion(messages)
        if not reply:
            raise DelegateError(f"{persona.value} produced no reply")
        return reply

    def generate_plan(self, goal: str, answers: List[str], persona: Persona) -> str:
        prompt = PLAN_PROMPT.format(persona_name=persona.value, goal=goal, answers=json.dumps(answers))
        raw = self.llm_client.chat_completion([{"role": "user", "content": prompt}], json_mode=True, temperature=0.3)
        if not raw:
            raise DelegateError("plan generation produced no output")
        return raw

    def summarize_achievement(self, plan: Plan, persona: Persona) -> str:
        prompt = ACHIEVEMENT_SUMMARY_PROMPT.format(
            persona_name=persona.value,
            plan_json=json.dumps(plan.to_payload(), indent=2),
        )
        summary = self.llm_client.chat_completion([{"role": "user", "content": prompt}])
        if not summary:
            raise DelegateError("achievement summary produced no output")
        return summary


class RemoteCoach:
    """Coach delegate that forwards to a separately hosted coach service.

    Expected remote endpoints (JSON in/out)::

        POST {base}/chat                 {messages, avatar}            -> {reply}
        POST {base}/final-plan           {goal_name, user_answers, avatar} -> {plan}
        POST {base}/achievement-summary  {plan, avatar}                -> {summary}
    """

    def __init__(self, settings: Settings):
        if not settings.coach_api_base_url:
            raise ValueError("RemoteCoach needs settings.coach_api_base_url")
        self.base_url = settings.coach_api_base_url.rstrip("/")

    def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        req = urllib.request.Request(
            f"{self.base_url}{path}",
            data=json.dumps(payload).encode("utf-8"),
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        try:
            with urllib.request.urlopen(req) as resp:  # nosec: B310
                body = resp.read().decode("utf-8")
        except urllib.error.HTTPError as exc:
            detail = exc.read().decode("utf-8", errors="ignore")[:200]
            raise DelegateError(f"coach service returned HTTP {exc.code} for {path}: {detail}") from exc
        except (urllib.error.URLError, OSError) as exc:
            raise DelegateError(f"coach service unreachable for {path}: {exc}") from exc

        try:
            data = json.loads(body)
        except ValueError as exc:
            raise DelegateError(f"coach service sent non-JSON body for {path}") from exc
        if not isinstance(data, dict):
            raise DelegateError(f"coach service sent an unexpected body for {path}")
        return data

    def generate_reply(self, history: List[Message], persona: Persona) -> str:
        data = self._post("/chat", {"messages": _history_to_messages(history), "avatar": persona.value})
        reply = data.get("reply") or data.get("message")
        if not isinstance(reply, str) or not reply.strip():
            raise DelegateError("coach service sent no reply")
        return reply

    def generate_plan(self, goal: str, answers: List[str], persona: Persona) -> Any:
        data = self._post("/final-plan", {"goal_name": goal, "user_answers": answers, "avatar": persona.value})
        # Passed through untouched; the normalizer makes sense of it.
        return data.get("plan", data)

    def summarize_achievement(self, plan: Plan, persona: Persona) -> str:
        data = self._post("/achievement-summary", {"plan": plan.to_payload(), "avatar": persona.value})
        summary = data.get("summary")
        if not isinstance(summary, str) or not summary.strip():
            raise DelegateError("coach service sent no summary")
        return summary


def build_coach(settings: Settings):
    if settings.coach_api_base_url:
        logger.info("[Coach] Using remote coach service at %s", settings.coach_api_base_url)
        return RemoteCoach(settings)
    return GeminiCoach(settings)
