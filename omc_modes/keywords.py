"""
Mode keyword table and matcher.

Every mode the prompt hook can activate is declared once in MODE_DEFINITIONS.
A mode matches when any of its patterns matches the sanitized, lower-cased
prompt. Matching is purely pattern-based.
"""

import re
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Pattern, Tuple

MCP_MODES = ("codex", "gemini")

SKILL_NAMESPACE = "oh-my-claudecode"


@dataclass(frozen=True)
class ModeMatch:
    """One detected activation; `synthesized` marks resolver-added matches."""
    name: str
    args: str = ""
    synthesized: bool = field(default=False, compare=False)


@dataclass(frozen=True)
class ModeDefinition:
    name: str
    patterns: Tuple[Pattern, ...]
    # Whether activation writes a persisted state record
    persists: bool = False
    # Extra veto applied to a pattern hit (text, match) -> keep
    accept: Optional[Callable[[str, "re.Match"], bool]] = None
    # Only evaluated when the team feature flag is enabled
    requires_team_flag: bool = False

    def matches(self, text: str) -> bool:
        for pattern in self.patterns:
            for hit in pattern.finditer(text):
                if self.accept is None or self.accept(text, hit):
                    return True
        return False


def _p(*sources: str) -> Tuple[Pattern, ...]:
    return tuple(re.compile(src, re.IGNORECASE) for src in sources)


_TEAM_ARTICLE_RE = re.compile(r"\b(?:my|the|our|a|his|her|their|its)\s$", re.IGNORECASE)


def _team_intent(text: str, hit: "re.Match") -> bool:
    """Reject a bare `team` that follows a possessive or article ("my team")."""
    if hit.group(0).lower() != "team":
        return True
    return _TEAM_ARTICLE_RE.search(text[: hit.start()]) is None


MODE_DEFINITIONS: Tuple[ModeDefinition, ...] = (
    ModeDefinition("cancel", _p(r"\b(cancelomc|stopomc)\b")),
    ModeDefinition(
        "ralph",
        _p(r"\b(ralph|don't stop|must complete|until done)\b"),
        persists=True,
    ),
    ModeDefinition(
        "autopilot",
        _p(
            r"\b(autopilot|auto pilot|auto-pilot|autonomous|full auto|fullsend)\b",
            r"\bbuild\s+me\s+",
            r"\bcreate\s+me\s+",
            r"\bmake\s+me\s+",
            r"\bi\s+want\s+an?\s+",
            r"\bhandle\s+it\s+all\b",
            r"\bend\s+to\s+end\b",
            r"\be2e\s+this\b",
        ),
        persists=True,
    ),
    ModeDefinition(
        "ultrapilot",
        _p(
            r"\b(ultrapilot|ultra-pilot)\b",
            r"\bparallel\s+build\b",
            r"\bswarm\s+build\b",
            r"\bswarm\s+\d+\s+agents?\b",
            r"\bcoordinated\s+agents\b",
        ),
    ),
    ModeDefinition("ultrawork", _p(r"\b(ultrawork|ulw|uw)\b"), persists=True),
    ModeDefinition(
        "ecomode",
        _p(r"\b(eco|ecomode|eco-mode|efficient|save-tokens|budget)\b"),
        persists=True,
    ),
    ModeDefinition(
        "team",
        _p(r"\bteam\b", r"\bcoordinated\s+team\b"),
        persists=True,
        accept=_team_intent,
        requires_team_flag=True,
    ),
    ModeDefinition("pipeline", _p(r"\bpipeline\b", r"\bchain\s+agents\b")),
    ModeDefinition("ralplan", _p(r"\bralplan\b")),
    ModeDefinition("plan", _p(r"\b(plan this|plan the)\b")),
    ModeDefinition("tdd", _p(r"\btdd\b", r"\btest\s+first\b", r"\bred\s+green\b")),
    ModeDefinition(
        "research",
        _p(r"\bresearch\b", r"\banalyze\s+data\b", r"\bstatistics\b"),
    ),
    ModeDefinition("ultrathink", _p(r"\b(ultrathink|think hard|think deeply)\b")),
    ModeDefinition(
        "deepsearch",
        _p(
            r"\bdeepsearch\b",
            r"\bsearch\s+(the\s+)?(codebase|code|files?|project)\b",
            r"\bfind\s+(in\s+)?(codebase|code|all\s+files?)\b",
        ),
    ),
    ModeDefinition(
        "analyze",
        _p(
            r"\bdeep\s*analyze\b",
            r"\binvestigate\s+(the|this|why)\b",
            r"\bdebug\s+(the|this|why)\b",
        ),
    ),
    ModeDefinition("codex", _p(r"\b(ask|use|delegate\s+to)\s+(codex|gpt)\b")),
    ModeDefinition("gemini", _p(r"\b(ask|use|delegate\s+to)\s+gemini\b")),
)

DEFINITIONS_BY_NAME = {d.name: d for d in MODE_DEFINITIONS}

STATEFUL_MODES = tuple(d.name for d in MODE_DEFINITIONS if d.persists)


def match(text: str, team_enabled: bool = False) -> List[ModeMatch]:
    """Evaluate the keyword table against sanitized text.

    Args:
        text: Sanitized prompt (lower-cased by the caller)
        team_enabled: Feature flag; the team mode is skipped when False

    Returns:
        Matches in table order, one per matching mode
    """
    matches = []
    for definition in MODE_DEFINITIONS:
        if definition.requires_team_flag and not team_enabled:
            continue
        if definition.matches(text):
            matches.append(ModeMatch(definition.name))
    return matches


# =============================================================================
# Hook message builders
# =============================================================================

ULTRATHINK_MESSAGE = """<think-mode>

**ULTRATHINK MODE ENABLED** - Extended reasoning activated.

You are now in deep thinking mode. Take your time to:
1. Thoroughly analyze the problem from multiple angles
2. Consider edge cases and potential issues
3. Think through the implications of each approach
4. Reason step-by-step before acting

Use your extended thinking capabilities to provide the most thorough and well-reasoned response.

</think-mode>

---
"""

_MCP_DELEGATES = {
    "codex": {
        "label": "Codex",
        "tool": "ask_codex",
        "roles": "architect, planner, critic, analyst, code-reviewer, security-reviewer, tdd-guide",
        "default_role": "architect",
    },
    "gemini": {
        "label": "Gemini",
        "tool": "ask_gemini",
        "roles": "designer, writer, vision",
        "default_role": "designer",
    },
}


def _args_line(args: str) -> str:
    return f"\nArguments: {args}" if args else ""


def skill_invocation(name: str, prompt: str, args: str = "") -> str:
    return (
        f"[MAGIC KEYWORD: {name.upper()}]\n\n"
        f"You MUST invoke the skill using the Skill tool:\n\n"
        f"Skill: {SKILL_NAMESPACE}:{name}{_args_line(args)}\n\n"
        f"User request:\n{prompt}\n\n"
        f"IMPORTANT: Invoke the skill IMMEDIATELY. "
        f"Do not proceed without loading the skill instructions."
    )


def multi_skill_invocation(skills: List[ModeMatch], prompt: str) -> str:
    """Skill tool instructions for one or more matches, in order."""
    if not skills:
        return ""
    if len(skills) == 1:
        return skill_invocation(skills[0].name, prompt, skills[0].args)

    blocks = "\n\n".join(
        f"### Skill {i}: {s.name.upper()}\n"
        f"Skill: {SKILL_NAMESPACE}:{s.name}{_args_line(s.args)}"
        for i, s in enumerate(skills, 1)
    )
    names = ", ".join(s.name.upper() for s in skills)
    return (
        f"[MAGIC KEYWORDS DETECTED: {names}]\n\n"
        f"You MUST invoke ALL of the following skills using the Skill tool, in order:\n\n"
        f"{blocks}\n\n"
        f"User request:\n{prompt}\n\n"
        f"IMPORTANT: Invoke ALL skills listed above. Start with the first skill "
        f"IMMEDIATELY. After it completes, invoke the next skill in order. "
        f"Do not skip any skill."
    )


def mcp_delegation(provider: str, prompt: str) -> str:
    """Instructions to hand the request to an external model's MCP tool."""
    delegate = _MCP_DELEGATES.get(provider)
    if delegate is None:
        return ""
    return (
        f"[MAGIC KEYWORD: {provider.upper()}]\n\n"
        f"You MUST delegate this task to the {delegate['label']} MCP tool.\n\n"
        f"Steps:\n"
        f"1. Write a prompt file to `.omc/prompts/{provider}-{{purpose}}-{{timestamp}}.md` "
        f"containing clear task instructions derived from the user's request\n"
        f"2. Determine the appropriate agent_role from: {delegate['roles']}\n"
        f"3. Call the `{delegate['tool']}` MCP tool with:\n"
        f"   - agent_role: <detected or default \"{delegate['default_role']}\">\n"
        f"   - prompt_file: <path you wrote>\n"
        f"   - output_file: <corresponding -summary.md path>\n"
        f"   - context_files: <relevant files from user's request>\n\n"
        f"User request:\n{prompt}\n\n"
        f"IMPORTANT: Do NOT invoke a skill. Delegate to the MCP tool IMMEDIATELY."
    )


def build_context(resolved: List[ModeMatch], prompt: str) -> str:
    """Compose the additionalContext text for a resolved activation list.

    ultrathink contributes a think-mode preamble rather than a skill;
    codex/gemini contribute MCP delegations rather than skills.
    """
    think = any(m.name == "ultrathink" for m in resolved)
    rest = [m for m in resolved if m.name != "ultrathink"]
    skills = [m for m in rest if m.name not in MCP_MODES]
    delegations = [m for m in rest if m.name in MCP_MODES]

    if skills and delegations:
        sections = [
            "## Section 1: Skill Invocations\n\n" + multi_skill_invocation(skills, prompt),
            "## Section 2: MCP Delegations\n\n"
            + "\n\n---\n\n".join(mcp_delegation(d.name, prompt) for d in delegations),
        ]
        names = ", ".join(m.name.upper() for m in skills + delegations)
        body = (
            f"[MAGIC KEYWORDS DETECTED: {names}]\n\n"
            + "\n\n---\n\n".join(sections)
            + "\n\nIMPORTANT: Complete ALL sections above in order."
        )
    elif delegations:
        body = "\n\n---\n\n".join(mcp_delegation(d.name, prompt) for d in delegations)
    else:
        body = multi_skill_invocation(skills, prompt)

    if think:
        return ULTRATHINK_MESSAGE + body
    return body
