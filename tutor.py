"""Conversation-turn orchestration for the Vyria tutor.

One turn makes up to three sequential chat-completion calls:

1. the tutor reply (fatal on failure),
2. an English translation plus a one-sentence hint for the reply,
3. a correction/grading pass over the learner's latest message.

Steps 2 and 3 degrade to empty results when the call fails or the model
returns something that does not validate. Points are computed locally from
the grading result.
"""
import json
import logging

from schemas import (
    Grade,
    GradingResult,
    TranslationHint,
    TurnRequest,
    TurnResponse,
)

logger = logging.getLogger(__name__)

DEFAULT_MODEL = 'gpt-4o-mini'

REPLY_TEMPERATURE = 0.7
REPLY_MAX_TOKENS = 500
TRANSLATION_TEMPERATURE = 0.2
TRANSLATION_MAX_TOKENS = 200
GRADING_TEMPERATURE = 0.3
GRADING_MAX_TOKENS = 500

ATTEMPT_BONUS = 5
PERFECT_POINTS = 120  # 100 + 20 perfect bonus
PERFECT_FEEDBACK = '🌟 Perfect! Excellent work!'

# How much English the tutor mixes into its reply, per level
TRANSLATION_POLICY = {
    'A1': "- After EACH sentence, add [English translation in brackets]",
    'A2': "- After EACH sentence, add [English translation in brackets]",
    'B1': "- Add [English hints] in brackets for difficult phrases only",
    'B2': "- Add [English hints] in brackets only for very difficult concepts",
    'C1': "- No English translations needed",
    'C2': "- No English translations needed",
}

# Roleplay replies also scale their own complexity
COMPLEXITY_POLICY = {
    'A1': "- Use very simple sentences and basic vocabulary",
    'A2': "- Use simple sentences with common vocabulary",
    'B1': "- Use moderate complexity",
    'B2': "- Use complex sentences",
    'C1': "- Use natural, complex language",
    'C2': "- Use natural, complex language",
}

TRANSLATION_EXAMPLES = {
    'A1': '- Example: "Bonjour!" [Hello!] "Comment allez-vous?" [How are you?]',
    'A2': '- Example: "Je voudrais un café." [I would like a coffee.]',
}


def translation_policy(level: str) -> str:
    return TRANSLATION_POLICY[level]


def build_system_prompt(turn: TurnRequest) -> str:
    """System instruction for the tutor reply, branching on roleplay and level."""
    language = turn.language
    level = turn.level
    level_lines = []
    if turn.roleplay is not None:
        level_lines.append(COMPLEXITY_POLICY[level])
    level_lines.append(translation_policy(level))
    if level in TRANSLATION_EXAMPLES:
        level_lines.append(TRANSLATION_EXAMPLES[level])
    level_block = "\n".join(level_lines)

    if turn.roleplay is not None:
        rp = turn.roleplay
        if turn.is_first_message:
            opening = "Start the conversation naturally as your character would in this setting"
        else:
            opening = "Continue the roleplay naturally"
        return (
            f"You are an expert {language} language tutor helping a {level} level student in a roleplay scenario.\n\n"
            f"ROLEPLAY SCENARIO: {rp.scenario}\n"
            f"YOUR CHARACTER: {rp.character}\n"
            f"SETTING: {rp.setting}\n\n"
            "Important instructions:\n"
            "1. Stay in character throughout the conversation\n"
            f"2. {opening}\n"
            "3. Keep the conversation context and remember previous exchanges\n"
            f"4. Speak primarily in {language} at the {level} level\n\n"
            f"Based on the student's level ({level}):\n"
            f"{level_block}\n\n"
            "5. Use emojis to make the roleplay engaging\n"
            "6. Keep responses concise (2-3 sentences)\n"
            "7. Encourage participation and praise efforts"
        )

    return (
        f"You are an expert {language} language tutor helping a {level} level student.\n"
        "Your role is to:\n"
        f"1. Have natural, engaging conversations in {language}\n"
        "2. Provide detailed grammar corrections with explanations\n"
        "3. Give encouraging feedback\n"
        "4. Keep responses concise and at the appropriate level\n"
        "5. Use emojis occasionally to make learning fun\n"
        "6. Praise good attempts and progress\n\n"
        f"Based on the student's level ({level}):\n"
        f"{level_block}\n\n"
        "When the student makes mistakes, be supportive and explain corrections clearly.\n"
        f"Respond primarily in {language}, but use English for grammar explanations.\n"
        "Keep your responses friendly and encouraging!\n"
        f"If the student slips into another language, gently remind them to continue in {language}."
    )


def _translation_prompt(reply: str, language: str) -> str:
    return (
        f"You are helping a {language} tutor. Provide a JSON object with two keys: \"translation\" and \"hint\".\n"
        "- \"translation\": translate the assistant message into English in a natural tone.\n"
        "- \"hint\": briefly explain one challenging phrase from the assistant message so the student can reply better. "
        "Keep the hint to one short sentence in English.\n"
        "Respond with valid JSON only.\n"
        f"Assistant message: \"{reply}\""
    )


def _grading_prompt(text: str, language: str, level: str) -> str:
    return (
        f"Analyze this {language} text from a {level} student: \"{text}\"\n\n"
        "Respond with a JSON object containing:\n"
        "1. \"hasErrors\": boolean\n"
        "2. \"corrected\": the corrected version (or original if no errors)\n"
        "3. \"mistakes\": array of {type, original, correction, explanation} for each mistake\n"
        "4. \"grade\": letter grade (A+, A, B+, B, C+, C, D, F)\n"
        "5. \"score\": integer score 0-100\n"
        "6. \"feedback\": encouraging feedback message\n"
        "7. \"improvements\": array of specific suggestions for improvement\n\n"
        f"Be encouraging but accurate. Write \"corrected\" in {language}, but write \"mistakes[].explanation\", "
        "\"feedback\", and each item in \"improvements\" in English. Grade based on:\n"
        "- Grammar accuracy (40%)\n"
        "- Vocabulary usage (30%)\n"
        "- Sentence structure (20%)\n"
        "- Spelling (10%)\n"
        f"If the student's message is not in {language}, politely remind them in \"feedback\" to respond in "
        f"{language} and provide guidance.\n\n"
        "Example response:\n"
        "{\n"
        "  \"hasErrors\": true,\n"
        "  \"corrected\": \"Hola, ¿cómo estás?\",\n"
        "  \"mistakes\": [\n"
        "    {\n"
        "      \"type\": \"spelling\",\n"
        "      \"original\": \"Ola\",\n"
        "      \"correction\": \"Hola\",\n"
        "      \"explanation\": \"Hola needs an 'H' at the beginning\"\n"
        "    }\n"
        "  ],\n"
        "  \"grade\": \"B+\",\n"
        "  \"score\": 85,\n"
        "  \"feedback\": \"Great attempt! Just one small spelling mistake.\",\n"
        "  \"improvements\": [\"Remember to include 'H' in Hola\", \"Try using more vocabulary\"]\n"
        "}"
    )


def extract_json_object(text: str):
    """Return the outermost {...} object in a completion, or raise ValueError."""
    text = text or ''
    start = text.find('{')
    end = text.rfind('}')
    if start == -1 or end == -1 or end <= start:
        raise ValueError('no JSON object in model output')
    payload = json.loads(text[start:end + 1])
    if not isinstance(payload, dict):
        raise ValueError('model output is not a JSON object')
    return payload


def _content(completion) -> str:
    return (completion.choices[0].message.content or '').strip()


def _usage(completion):
    usage = getattr(completion, 'usage', None)
    if usage is None:
        return None
    if hasattr(usage, 'model_dump'):
        return usage.model_dump()
    return dict(usage)


def request_tutor_reply(client, turn: TurnRequest, model: str = DEFAULT_MODEL):
    """Primary completion. Provider errors propagate to the caller."""
    messages = [{'role': 'system', 'content': build_system_prompt(turn)}]
    messages.extend(m.model_dump() for m in turn.messages)
    return client.chat.completions.create(
        model=model,
        messages=messages,
        temperature=REPLY_TEMPERATURE,
        max_tokens=REPLY_MAX_TOKENS,
    )


def request_translation_hint(client, reply: str, language: str, model: str = DEFAULT_MODEL) -> TranslationHint:
    try:
        helper = client.chat.completions.create(
            model=model,
            messages=[
                {'role': 'system',
                 'content': 'You produce concise JSON. Never add extra text. Keys must be translation and hint.'},
                {'role': 'user', 'content': _translation_prompt(reply, language)},
            ],
            temperature=TRANSLATION_TEMPERATURE,
            max_tokens=TRANSLATION_MAX_TOKENS,
        )
        return TranslationHint.model_validate(extract_json_object(_content(helper)))
    except Exception as e:
        logger.warning("Translation helper failed: %s", e)
        return TranslationHint()


def request_grading(client, text: str, language: str, level: str, model: str = DEFAULT_MODEL):
    """Grade the learner's message. Returns a GradingResult or None when the model output is unusable."""
    try:
        check = client.chat.completions.create(
            model=model,
            messages=[
                {'role': 'system',
                 'content': 'You are a language teacher providing detailed feedback. Always respond with valid JSON only.'},
                {'role': 'user', 'content': _grading_prompt(text, language, level)},
            ],
            temperature=GRADING_TEMPERATURE,
            max_tokens=GRADING_MAX_TOKENS,
        )
        return GradingResult.model_validate(extract_json_object(_content(check)))
    except Exception as e:
        logger.warning("Could not parse correction response: %s", e)
        return None


def award_points(result):
    """Map a grading result to (correction, grade, points).

    Any reported error or a score below 100 earns floor(score/10)*10 plus the
    attempt bonus, so hasErrors with a score of 100 earns 105. Only an
    error-free 100 gets the synthetic A+ and the perfect award.
    """
    if result is None:
        return None, None, 0
    if result.has_errors or result.score < 100:
        grade = Grade(letter=result.grade, score=result.score, feedback=result.feedback)
        points = (result.score // 10) * 10 + ATTEMPT_BONUS
        return result.correction(), grade, points
    grade = Grade(letter='A+', score=100, feedback=PERFECT_FEEDBACK)
    return None, grade, PERFECT_POINTS


def run_turn(client, turn: TurnRequest, model: str = DEFAULT_MODEL) -> TurnResponse:
    completion = request_tutor_reply(client, turn, model=model)
    reply = _content(completion)

    helper = request_translation_hint(client, reply, turn.language, model=model)

    correction = None
    grade = None
    points = 0
    user_text = turn.last_user_message()
    if user_text is not None:
        result = request_grading(client, user_text, turn.language, turn.level, model=model)
        correction, grade, points = award_points(result)

    return TurnResponse(
        message=reply,
        correction=correction,
        grade=grade,
        points=points,
        translation=helper.translation,
        hint=helper.hint,
        usage=_usage(completion),
    )
