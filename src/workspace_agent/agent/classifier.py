"""
agent/classifier.py — Intent Classifier

Deterministically sorts the first planning message of a session into
complex / simple / question. The result parameterises the planning prompt
(skip the Q&A for simple edits, answer directly for questions).

Rules, highest priority first:
  1. empty / whitespace                                    → simple
  2. ends with '?' or '？' and has no build verb             → question
  3. complex signal (> 25 tokens, platform-scope keyword,
     conjunction + build verb, or 3+ distinct build verbs) → complex
  4. informational prefix and no build verb                → question
  5. single-operation verb, ≤ 20 tokens, no scope word     → simple
  6. otherwise                                             → complex

Tokens: each CJK character is one token, each run of letters/digits is one
token, everything else separates.

Pure functions only; no state, no I/O.
"""

from __future__ import annotations

import re

from workspace_agent.agent.session import ComplexityHint

_COMPLEX_TOKEN_LIMIT = 25
_SIMPLE_TOKEN_LIMIT = 20
_MIN_DISTINCT_VERBS_COMPLEX = 3

_WORD_RE = re.compile(r"[a-z0-9]+")

# ── Vocabulary ────────────────────────────────────────────────────────────────

_BUILD_VERBS_EN = frozenset({
    "build", "builds", "building",
    "create", "creates", "creating",
    "make", "makes", "making",
    "add", "adds", "adding",
    "generate", "generates", "generating",
    "design", "designs", "designing",
    "develop", "develops", "developing",
    "implement", "implements", "implementing",
    "setup", "construct", "deploy", "insert",
    "modify", "update", "change", "delete", "remove", "rename", "alter",
})

_BUILD_VERBS_ZH = (
    "创建", "新建", "建立", "搭建", "构建", "开发", "生成", "设计", "制作",
    "添加", "增加", "新增", "修改", "更新", "删除", "删掉", "部署", "实现",
    "做", "建", "加", "改",
)

_SCOPE_KEYWORDS_EN = frozenset({
    "system", "systems", "platform", "application", "app", "website",
    "portal", "crm", "erp", "marketplace", "saas",
})

_SCOPE_KEYWORDS_ZH = ("系统", "平台", "应用", "网站", "门户", "商城", "小程序", "项目")

_CONJUNCTIONS_EN = frozenset({"and", "then", "also", "plus"})

_CONJUNCTIONS_ZH = ("和", "以及", "并且", "然后", "同时", "还要", "另外")

_INFO_PREFIXES_EN = frozenset({
    "what", "how", "which", "where", "why", "who", "when",
    "list", "show", "explain", "describe", "tell",
    "is", "are", "does", "do", "can", "could",
})

_INFO_PREFIXES_ZH = (
    "查询", "列出", "查看", "显示", "什么", "怎么", "如何", "为什么",
    "哪些", "哪个", "是否", "有没有", "多少", "告诉我", "请问",
)

_SINGLE_OP_VERBS_EN = frozenset({
    "add", "rename", "remove", "delete", "change", "update", "modify",
    "alter", "insert", "drop", "fix", "hide", "move", "set",
})

_SINGLE_OP_VERBS_ZH = (
    "加", "添加", "增加", "新增", "删除", "删掉", "去掉", "修改", "改",
    "重命名", "更新", "插入", "隐藏", "调整", "设置", "换",
)

_COMPLEX_SCOPE_EN = frozenset({
    "module", "modules", "multiple", "several", "entire", "whole",
    "complete", "full", "workflow", "workflows", "dashboard", "dashboards",
    "pages", "tables", "everything",
})

_COMPLEX_SCOPE_ZH = ("模块", "多个", "多张", "几个", "整个", "全部", "完整", "一套", "流程", "工作流", "仪表盘", "后台")


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────


def _is_cjk(ch: str) -> bool:
    return (
        "\u4e00" <= ch <= "\u9fff"
        or "\u3400" <= ch <= "\u4dbf"
        or "\uf900" <= ch <= "\ufaff"
    )


def count_tokens(message: str) -> int:
    """CJK characters count one each; letter/digit runs count one each."""
    tokens = 0
    in_word = False
    for ch in message:
        if _is_cjk(ch):
            tokens += 1
            in_word = False
        elif ch.isalnum():
            if not in_word:
                tokens += 1
                in_word = True
        else:
            in_word = False
    return tokens


def _english_words(text: str) -> set[str]:
    return set(_WORD_RE.findall(text))


def _scan_zh(text: str, vocabulary: tuple[str, ...]) -> set[str]:
    """Longest-match scan so 创建 is not also counted as 建."""
    ordered = sorted(vocabulary, key=len, reverse=True)
    found: set[str] = set()
    i = 0
    while i < len(text):
        for word in ordered:
            if text.startswith(word, i):
                found.add(word)
                i += len(word)
                break
        else:
            i += 1
    return found


def _contains_any(text: str, vocabulary: tuple[str, ...]) -> bool:
    return any(word in text for word in vocabulary)


def build_verbs(message: str) -> set[str]:
    """Distinct construction verbs in the message (English and Chinese)."""
    lowered = message.lower()
    found = _english_words(lowered) & _BUILD_VERBS_EN
    if "set up" in lowered:
        found.add("setup")
    return found | _scan_zh(lowered, _BUILD_VERBS_ZH)


def _has_informational_prefix(text: str) -> bool:
    words = _WORD_RE.findall(text)
    if words and text.startswith(words[0]) and words[0] in _INFO_PREFIXES_EN:
        return True
    return text.startswith(_INFO_PREFIXES_ZH)


# ─────────────────────────────────────────────────────────────────────────────
# Public API
# ─────────────────────────────────────────────────────────────────────────────


def classify(message: str) -> ComplexityHint:
    """Map a raw user message to a ComplexityHint (never UNSET)."""
    text = message.strip().lower()
    if not text:
        return ComplexityHint.SIMPLE

    verbs = build_verbs(text)
    words = _english_words(text)
    tokens = count_tokens(text)

    if text.endswith(("?", "？")) and not verbs:
        return ComplexityHint.QUESTION

    has_scope = bool(words & _SCOPE_KEYWORDS_EN) or _contains_any(text, _SCOPE_KEYWORDS_ZH)
    has_conjunction = bool(words & _CONJUNCTIONS_EN) or _contains_any(text, _CONJUNCTIONS_ZH)
    if (
        tokens > _COMPLEX_TOKEN_LIMIT
        or has_scope
        or (has_conjunction and verbs)
        or len(verbs) >= _MIN_DISTINCT_VERBS_COMPLEX
    ):
        return ComplexityHint.COMPLEX

    if _has_informational_prefix(text) and not verbs:
        return ComplexityHint.QUESTION

    has_single_op = bool(words & _SINGLE_OP_VERBS_EN) or _contains_any(text, _SINGLE_OP_VERBS_ZH)
    has_complex_scope = bool(words & _COMPLEX_SCOPE_EN) or _contains_any(text, _COMPLEX_SCOPE_ZH)
    if has_single_op and tokens <= _SIMPLE_TOKEN_LIMIT and not has_complex_scope:
        return ComplexityHint.SIMPLE

    return ComplexityHint.COMPLEX
