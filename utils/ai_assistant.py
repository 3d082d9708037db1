"""
AI assistance: description enhancement, risk analysis and the help chatbot.

All calls go through one OpenAI-compatible client built at startup; provider
failures are turned into UpstreamError with a status the API can return.
"""

import json
import logging
import re
import openai
from openai import OpenAI
from models import db, ChatSession, CHAT_TEXT_MAX_LENGTH
from utils.error_handling import UpstreamError

logger = logging.getLogger(__name__)

DEFAULT_MODEL = 'gpt-4o-mini'
CHAT_CONTEXT_LIMIT = 100

CHATBOT_SYSTEM_PROMPT = (
    "You are a helpful assistant designed to provide information about the HelpWise platform, "
    "where people post help requests, helpers place bids and requesters accept the best offer. "
    "Answer user questions clearly and concisely to help them understand how to use the website."
)

RISK_PROMPT = """Analyze the following help request and provide a concise, structured risk assessment.

**Help Request Title:** {title}
**Description:** {description}

**Instructions:**
- Identify 3-5 key risks associated with responding to this help request
- For each risk, provide 1-2 specific prevention measures
- Use clear, concise bullet points
- Keep the total response under 300 words
- Format using Markdown with headers and bullets

**Format your response as:**

## Risk Assessment

### Risk 1: [Risk Name]
- **Prevention:** [Prevention measure 1]
- **Prevention:** [Prevention measure 2]

### Risk 2: [Risk Name]
- **Prevention:** [Prevention measure]

[Continue for remaining risks]"""

ENHANCE_PROMPT = """You are an intelligent assistant for a help request platform.

Task 1: Enhance the following help request description to be clear, detailed, professional, and compelling.
Task 2: Select the most appropriate category ID from the provided list that best matches the description.

User Description: "{description}"

Available Categories:
{categories}

Output Format:
Provide the response in strictly valid JSON format with no additional text or markdown formatting:
{{
  "enhancedDescription": "The enhanced description text...",
  "suggestedCategoryId": "The exact ID of the best matching category"
}}"""

FENCE_PATTERN = re.compile(r'```(?:json)?', re.IGNORECASE)


class AIAssistant:
    """Thin adapter around a chat-completions client"""

    def __init__(self, client=None, model=DEFAULT_MODEL):
        self.client = client
        self.model = model

    @classmethod
    def from_config(cls, config):
        model = config.get('OPENAI_MODEL') or DEFAULT_MODEL
        api_key = config.get('OPENAI_API_KEY')
        if not api_key:
            logger.warning("OPENAI_API_KEY is not set; AI features will answer with an error")
            return cls(None, model)
        client = OpenAI(api_key=api_key, base_url=config.get('OPENAI_BASE_URL') or None)
        return cls(client, model)

    def _complete(self, messages, failure_message, max_tokens=800, temperature=0.7):
        if self.client is None:
            raise UpstreamError('AI service is not configured.', 500)

        try:
            completion = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except openai.RateLimitError as e:
            logger.warning(f"AI provider quota exceeded: {str(e)}")
            raise UpstreamError('AI service quota exceeded. Please try again later.', 429, detail=str(e))
        except openai.AuthenticationError as e:
            logger.error(f"AI provider rejected the API key: {str(e)}")
            raise UpstreamError('AI service authentication failed. Please check the API key configuration.',
                                502, detail=str(e))
        except openai.OpenAIError as e:
            logger.error(f"AI provider call failed: {str(e)}")
            raise UpstreamError(failure_message, 500, detail=str(e))

        content = completion.choices[0].message.content or ''
        return content.strip()

    def generate_risks(self, title, description):
        prompt = RISK_PROMPT.format(title=title, description=description)
        return self._complete(
            [{'role': 'user', 'content': prompt}],
            'Failed to generate risks and prevention measures. Please try again later.',
        )

    def enhance_description(self, description, categories):
        """Return {'enhancedDescription', 'suggestedCategoryId'}; unknown category ids become None"""
        failure = 'Failed to enhance description. Please try again later.'
        category_lines = '\n'.join(
            f"- {c.name} (ID: {c.id}): {c.description or ''}" for c in categories
        )
        text = self._complete(
            [{'role': 'user', 'content': ENHANCE_PROMPT.format(description=description, categories=category_lines)}],
            failure,
        )

        try:
            parsed = json.loads(FENCE_PATTERN.sub('', text).strip())
        except ValueError as e:
            logger.error(f"AI provider returned unparseable JSON: {text[:200]}")
            raise UpstreamError(failure, 500, detail=str(e))
        if not isinstance(parsed, dict) or not parsed.get('enhancedDescription'):
            raise UpstreamError(failure, 500, detail='Response is missing enhancedDescription')

        suggested = None
        try:
            candidate = int(parsed.get('suggestedCategoryId'))
            if candidate in {c.id for c in categories}:
                suggested = candidate
        except (TypeError, ValueError):
            pass

        return {
            'enhancedDescription': str(parsed['enhancedDescription']).strip(),
            'suggestedCategoryId': suggested,
        }

    def chat(self, message, history=None):
        """Answer a chatbot message given prior {sender, text} entries"""
        messages = [{'role': 'system', 'content': CHATBOT_SYSTEM_PROMPT}]
        for entry in (history or [])[-CHAT_CONTEXT_LIMIT:]:
            text = entry.get('text')
            if not text:
                continue
            role = 'user' if entry.get('sender') == 'user' else 'assistant'
            messages.append({'role': role, 'content': str(text)[:CHAT_TEXT_MAX_LENGTH]})
        messages.append({'role': 'user', 'content': message})

        return self._complete(messages, 'Failed to get a response from the assistant. Please try again later.',
                              max_tokens=500)


class ChatSessionService:
    """Persisted chatbot history for signed-in users"""

    @staticmethod
    def get_session(user, create=False):
        session = ChatSession.query.filter_by(user_id=user.id).first()
        if not session and create:
            session = ChatSession(user_id=user.id, messages=[], message_count=0)
            db.session.add(session)
        return session

    @staticmethod
    def history(user):
        session = ChatSessionService.get_session(user)
        return session.messages if session else []

    @staticmethod
    def reply(assistant, message, user=None, guest_history=None):
        """Ask the assistant; signed-in users get the exchange stored"""
        if user is None:
            return assistant.chat(message, guest_history)

        session = ChatSessionService.get_session(user, create=True)
        reply = assistant.chat(message, session.messages)
        session.add_exchange(message, reply, metadata={'model': assistant.model})
        db.session.commit()
        return reply

    @staticmethod
    def clear(user):
        session = ChatSessionService.get_session(user)
        if not session:
            return False
        db.session.delete(session)
        db.session.commit()
        logger.info(f"Chat history cleared for user {user.id}")
        return True
