"""Prompt builders for the answering pipeline.

All prompts are Korean, matching the product's users. An admin-managed
instruction, when non-blank, replaces ``DEFAULT_SYSTEM_PROMPT_HEADER``.
"""

from canvas_ai.rag.types import ActionType

DEFAULT_SYSTEM_PROMPT_HEADER = """당신은 주어진 '참고 컨텍스트'를 기반으로 사용자에게 가장 정확하고 도움이 되는 답변을 제공하는 AI 전문가입니다. 아래의 <규칙>을 반드시 준수하여 답변을 생성하세요.

<규칙>
1. 컨텍스트 우선: 답변은 <참고 컨텍스트>의 내용에 근거해야 합니다. 사전 지식으로 보충 설명할 수는 있지만 컨텍스트와 상충되는 내용은 말하지 마세요.
2. 정보 부족 인정: <참고 컨텍스트>에서 답을 찾을 수 없으면 "죄송하지만, 제공된 정보 내에서는 해당 질문에 대한 답변을 찾을 수 없습니다."라고 답하세요. 추측하거나 정보를 지어내지 마세요.
3. 출처 명시: 가능하면 답변의 근거가 된 자료를 밝혀 주세요. (예: "...라는 특징이 있습니다 [출처: 기술문서 A-1].")
4. 대화 맥락 활용: <최근 대화 맥락>으로 이전 질문과 의도를 파악해 이어지는 답변을 하세요.
5. 간결하고 명확하게: 전문 용어를 줄이고 핵심을 쉽게 요약하세요."""

FORMATTING_RULES = """<출력 형식>
- 마크다운 기호(*, #, `, >)를 사용하지 마세요.
- 여러 항목은 1. 2. 3. 처럼 번호 목록으로 정리하세요.
- 문단 사이에는 빈 줄을 한 줄 넣으세요."""

NO_CONTEXT_TEXT = "현재 활용 가능한 참고 컨텍스트가 없습니다."
NO_HISTORY_TEXT = "대화 히스토리가 없습니다."
NO_SNIPPET_TEXT = "제공된 초기 컨텍스트 없음"
WEB_CONTEXT_HEADER = "최신 웹 검색 결과:"

ACTION_DESCRIPTIONS: dict[ActionType, str] = {
    ActionType.KNOWLEDGE_ONLY: "주어진 '초기 컨텍스트'만으로 충분히 답변할 수 있을 때 선택합니다. (예: 회사 내부 정책 질문)",
    ActionType.WEB_SEARCH: (
        "'초기 컨텍스트'가 없거나, 사용자가 '최신', '실시간', 특정 외부 정보(인물, 뉴스, 경쟁사 등)를 요구할 때 "
        "선택합니다. 이 경우 최적의 검색어(searchQuery)를 반드시 생성하세요."
    ),
    ActionType.CLARIFY: (
        "질문이 너무 모호해서 지식과 웹 중 무엇을 써야 할지 판단하기 어려울 때 선택합니다. "
        "사용자에게 되물을 질문(clarificationQuestion)을 생성하세요."
    ),
    ActionType.CONVERSATION_SUMMARY: (
        "사용자가 '대화/채팅/지금까지/conversation' 등 대화 자체의 요약을 명시적으로 요청할 때 선택합니다. "
        "웹 검색은 하지 않습니다."
    ),
    ActionType.KNOWLEDGE_SUMMARY: (
        "사용자가 '지식/자료/업로드/컨텍스트/knowledge'의 요약을 요청할 때 선택합니다. "
        "웹 검색은 하지 않고 내부/글로벌 지식을 최대한 포함해 요약합니다."
    ),
}


def resolve_header(external_instruction: str | None) -> str:
    instruction = (external_instruction or "").strip()
    return instruction if instruction else DEFAULT_SYSTEM_PROMPT_HEADER


def merge_contexts(knowledge_context: str, web_context: str) -> str:
    """Append the web block to the knowledge block when there is one."""
    if not web_context.strip():
        return knowledge_context
    return f"{knowledge_context}\n\n{WEB_CONTEXT_HEADER}\n{web_context}"


def build_action_decision_prompt(user_query: str, knowledge_snippet: str, history_text: str = "") -> str:
    """Build the classification prompt for the action decision.

    The model must answer with a single JSON object:
    ``{"action", "reason", "searchQuery", "clarificationQuestion"}``.
    """
    action_lines = "\n".join(
        f"{idx}. {action.value}: {ACTION_DESCRIPTIONS[action]}" for idx, action in enumerate(ActionType, start=1)
    )
    action_values = " | ".join(action.value for action in ActionType)

    return f"""당신은 사용자의 질문 의도를 분석해 최적의 답변 전략을 세우는 'RAG 전략가'입니다.
<사용자 질문>과 <초기 컨텍스트>(내부 지식 검색 결과 요약)를 바탕으로 아래 {len(ActionType)}가지 행동 중 가장 적절한 것 하나를 고르고 이유를 설명하세요.

<사용자 질문>
{user_query}

<초기 컨텍스트>
{knowledge_snippet or NO_SNIPPET_TEXT}

<최근 대화 맥락>
{history_text or NO_HISTORY_TEXT}

<지시사항>
{action_lines}
- 결정과 근거를 아래 JSON 형식으로만 응답하세요. 다른 설명은 추가하지 마세요.

<응답 형식>
{{
  "action": "{action_values}",
  "reason": "이 행동을 선택한 구체적인 근거 (1-2 문장)",
  "searchQuery": "WEB_SEARCH 선택 시 실행할 검색어, 그 외에는 null",
  "clarificationQuestion": "CLARIFY 선택 시 사용자에게 할 질문, 그 외에는 null"
}}"""


def build_answer_synthesis_prompt(
    knowledge_context: str,
    history_text: str,
    user_query: str,
    external_instruction: str | None = None,
) -> str:
    header = resolve_header(external_instruction)
    return (
        f"{header}\n\n"
        f"<참고 컨텍스트>\n{knowledge_context.strip() or NO_CONTEXT_TEXT}\n\n"
        f"<최근 대화 맥락>\n{history_text or NO_HISTORY_TEXT}\n\n"
        f"<사용자 질문>\n{user_query}\n\n"
        f"{FORMATTING_RULES}\n\n"
        "이제 위의 규칙에 따라 사용자의 질문에 답변하세요."
    )


def build_conversation_summary_prompt(history_text: str, external_instruction: str | None = None) -> str:
    header = resolve_header(external_instruction)
    return (
        f"{header}\n\n"
        "당신은 전문 대화 요약가입니다. 아래 최근 대화 맥락을 읽고 핵심 요점, 결정사항, 열린 이슈와 후속 작업을 "
        "한국어로 간결히 정리하세요. 불필요한 중복은 제거하고 항목별로 번호 목록을 사용하세요.\n\n"
        f"<최근 대화 맥락>\n{history_text or NO_HISTORY_TEXT}\n\n"
        f"{FORMATTING_RULES}"
    )


def build_knowledge_summary_prompt(context_text: str, external_instruction: str | None = None) -> str:
    header = resolve_header(external_instruction)
    return (
        f"{header}\n\n"
        "당신은 기술 문서를 요약하는 전문가입니다. 아래 컨텍스트(내부/글로벌 지식)를 읽고 핵심 주제, 주요 사실, "
        "수치와 예시, 결론을 한국어로 명확하게 요약하세요.\n\n"
        f"<참고 컨텍스트>\n{context_text.strip() or NO_CONTEXT_TEXT}\n\n"
        f"{FORMATTING_RULES}"
    )
