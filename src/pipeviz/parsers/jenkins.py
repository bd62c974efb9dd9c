# parsers/jenkins.py
from __future__ import annotations

import logging
import re
import textwrap
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from ..errors import PipelineSyntaxError, UnsupportedFeature
from ..model import PipelineFormat, RawJob, RawPipeline, RawStep

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------
# Core idea
# ---------------------------------------------------------------------
# Only the declarative grammar is understood:
#
#   pipeline {
#     stages {
#       stage('Build') {
#         when { branch 'main' }
#         input { message 'Ship it?' }
#         steps { sh 'make' }
#         parallel { stage('A') { steps { ... } } }
#       }
#     }
#   }
#
# The source is tokenized (strings/comments aware), then folded into a tree
# of sections: `head tokens { body }` or plain statements. The tree is then
# interpreted; anything outside the declarative subset is reported as
# UnsupportedFeature instead of being guessed at.
# ---------------------------------------------------------------------

SHELL_STEPS = {"sh", "bat", "powershell", "pwsh"}
FAILURE_TOLERANT_WRAPPERS = {"catchError", "warnError"}
CONTROL_FLOW_KEYWORDS = {"if", "else", "for", "while", "try", "catch", "finally", "switch"}
GROOVY_KEYWORDS = CONTROL_FLOW_KEYWORDS | {"def", "return"}

_WORD = re.compile(r"[A-Za-z_$][\w$.]*|\d[\w.]*")
_OPERATOR = re.compile(r"[=!&|<>+\-*/?.~%^@]+")
_PUNCT = {"{": "LBRACE", "}": "RBRACE", "(": "LPAREN", ")": "RPAREN",
          "[": "LBRACK", "]": "RBRACK", ",": "COMMA", ":": "COLON", ";": "SEMI"}
_ESCAPES = {"\\", "'", '"', "$"}


@dataclass(frozen=True)
class Token:
    kind: str       # WORD | STRING | NEWLINE | OP | one of _PUNCT values
    value: str
    line: int
    start: int
    end: int


@dataclass
class Section:
    """`head { body }` when body is not None, otherwise a plain statement."""
    tokens: List[Token]
    line: int
    body: Optional[List["Section"]] = None
    body_span: Tuple[int, int] = (0, 0)

    @property
    def name(self) -> str:
        if self.tokens and self.tokens[0].kind == "WORD":
            return self.tokens[0].value
        return ""

    def child(self, name: str) -> Optional["Section"]:
        for c in self.body or []:
            if c.name == name and c.body is not None:
                return c
        return None


# ---------------------------------------------------------------------
# Tokenizer
# ---------------------------------------------------------------------

def _unescape(raw: str) -> str:
    out: List[str] = []
    i = 0
    while i < len(raw):
        ch = raw[i]
        if ch == "\\" and i + 1 < len(raw) and raw[i + 1] in _ESCAPES:
            out.append(raw[i + 1])
            i += 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)


def tokenize(src: str) -> List[Token]:
    tokens: List[Token] = []
    i, line, n = 0, 1, len(src)

    while i < n:
        ch = src[i]

        if ch == "\n":
            tokens.append(Token("NEWLINE", "\n", line, i, i + 1))
            line += 1
            i += 1
            continue
        if ch in " \t\r\f":
            i += 1
            continue

        # comments
        if src.startswith("//", i):
            end = src.find("\n", i)
            i = n if end == -1 else end
            continue
        if src.startswith("/*", i):
            end = src.find("*/", i + 2)
            if end == -1:
                raise PipelineSyntaxError(line, "unterminated block comment")
            line += src.count("\n", i, end)
            i = end + 2
            continue

        # strings
        if src.startswith("'''", i) or src.startswith('"""', i):
            quote = src[i:i + 3]
            end = src.find(quote, i + 3)
            if end == -1:
                raise PipelineSyntaxError(line, "unterminated triple-quoted string")
            tokens.append(Token("STRING", _unescape(src[i + 3:end]), line, i, end + 3))
            line += src.count("\n", i, end)
            i = end + 3
            continue
        if ch in ("'", '"'):
            j = i + 1
            while j < n and src[j] != ch:
                if src[j] == "\n":
                    raise PipelineSyntaxError(line, "unterminated string literal")
                j += 2 if src[j] == "\\" else 1
            if j >= n:
                raise PipelineSyntaxError(line, "unterminated string literal")
            tokens.append(Token("STRING", _unescape(src[i + 1:j]), line, i, j + 1))
            i = j + 1
            continue

        if ch in _PUNCT:
            tokens.append(Token(_PUNCT[ch], ch, line, i, i + 1))
            i += 1
            continue

        m = _WORD.match(src, i) or _OPERATOR.match(src, i)
        if m:
            kind = "WORD" if _WORD.match(src, i) else "OP"
            tokens.append(Token(kind, m.group(0), line, i, m.end()))
            i = m.end()
            continue

        tokens.append(Token("OP", ch, line, i, i + 1))
        i += 1

    return tokens


# ---------------------------------------------------------------------
# Block reader
# ---------------------------------------------------------------------

MAX_NESTING = 64  # brace depth accepted by the block reader
_OPENERS = {"LPAREN": "RPAREN", "LBRACK": "RBRACK"}
_CONTINUES = {"COMMA", "COLON", "OP"}


def _next_significant(tokens: List[Token], pos: int) -> Optional[Token]:
    while pos < len(tokens) and tokens[pos].kind == "NEWLINE":
        pos += 1
    return tokens[pos] if pos < len(tokens) else None


def read_sections(
    tokens: List[Token],
    pos: int = 0,
    opener: Optional[Token] = None,
    depth: int = 0,
) -> Tuple[List[Section], int]:
    """
    Fold tokens into sections until the matching '}' (or end of input at top level).

    Inside parentheses/brackets newlines and braces are part of the head, so
    multi-line argument lists and closures passed as arguments stay in one
    statement.
    """
    sections: List[Section] = []
    head: List[Token] = []
    stack: List[Token] = []

    def flush() -> None:
        if head:
            sections.append(Section(tokens=list(head), line=head[0].line))
            head.clear()

    while pos < len(tokens):
        tok = tokens[pos]

        if stack:
            if tok.kind in _OPENERS or tok.kind == "LBRACE":
                stack.append(tok)
            elif tok.kind in ("RPAREN", "RBRACK", "RBRACE"):
                top = stack.pop()
                expected = _OPENERS.get(top.kind, "RBRACE")
                if tok.kind != expected:
                    raise PipelineSyntaxError(tok.line, f"unexpected '{tok.value}' (opened on line {top.line})")
            if tok.kind != "NEWLINE":
                head.append(tok)
            pos += 1
            continue

        if tok.kind in _OPENERS:
            stack.append(tok)
            head.append(tok)
            pos += 1
            continue
        if tok.kind in ("RPAREN", "RBRACK"):
            raise PipelineSyntaxError(tok.line, f"unexpected '{tok.value}'")

        if tok.kind in ("NEWLINE", "SEMI"):
            nxt = _next_significant(tokens, pos + 1)
            continued = head and (head[-1].kind in _CONTINUES or (nxt is not None and nxt.kind == "LBRACE"))
            if tok.kind == "SEMI" or not continued:
                flush()
            pos += 1
            continue

        if tok.kind == "LBRACE":
            if depth >= MAX_NESTING:
                raise PipelineSyntaxError(tok.line, f"blocks nested deeper than {MAX_NESTING} levels")
            body, end_pos = read_sections(tokens, pos + 1, opener=tok, depth=depth + 1)
            closing = tokens[end_pos - 1]
            sections.append(Section(
                tokens=list(head),
                line=head[0].line if head else tok.line,
                body=body,
                body_span=(tok.end, closing.start),
            ))
            head.clear()
            pos = end_pos
            continue

        if tok.kind == "RBRACE":
            if opener is None:
                raise PipelineSyntaxError(tok.line, "unexpected '}'")
            flush()
            return sections, pos + 1

        head.append(tok)
        pos += 1

    if stack:
        raise PipelineSyntaxError(stack[-1].line, f"'{stack[-1].value}' is never closed")
    if opener is not None:
        raise PipelineSyntaxError(opener.line, "'{' is never closed")
    flush()
    return sections, pos


# ---------------------------------------------------------------------
# Argument helpers
# ---------------------------------------------------------------------

def _source(src: str, toks: List[Token]) -> str:
    if not toks:
        return ""
    return " ".join(src[toks[0].start:toks[-1].end].split())


def call_args(section: Section, src: str) -> Tuple[List[str], Dict[str, str]]:
    """
    Split `name 'a', key: 'b'` / `name('a', key: 'b')` into positional and
    named arguments. String literals yield their value, anything else its
    source text.
    """
    toks = section.tokens[1:]
    if toks and toks[0].kind == "LPAREN" and toks[-1].kind == "RPAREN":
        toks = toks[1:-1]

    groups: List[List[Token]] = [[]]
    depth = 0
    for tok in toks:
        if tok.kind in ("LPAREN", "LBRACK", "LBRACE"):
            depth += 1
        elif tok.kind in ("RPAREN", "RBRACK", "RBRACE"):
            depth -= 1
        if tok.kind == "COMMA" and depth == 0:
            groups.append([])
            continue
        groups[-1].append(tok)

    positional: List[str] = []
    named: Dict[str, str] = {}
    for group in groups:
        if not group:
            continue
        if len(group) >= 2 and group[0].kind in ("WORD", "STRING") and group[1].kind == "COLON":
            named[group[0].value] = _value(group[2:], src)
        else:
            positional.append(_value(group, src))
    return positional, named


def _value(toks: List[Token], src: str) -> str:
    if len(toks) == 1 and toks[0].kind == "STRING":
        return toks[0].value
    return _source(src, toks)


def _script_commands(script: str) -> Tuple[str, ...]:
    body = textwrap.dedent(script)
    return tuple(line.rstrip() for line in body.splitlines() if line.strip())


def _short(text: str) -> str:
    first = text.strip().splitlines()[0] if text.strip() else ""
    return f"{first[:60]}{'…' if len(first) > 60 else ''}"


# ---------------------------------------------------------------------
# Interpreter
# ---------------------------------------------------------------------

@dataclass
class _StepScan:
    steps: List[RawStep] = field(default_factory=list)
    manual: bool = False
    prompt: Optional[str] = None


def _control_flow(sections: List[Section]) -> Optional[Section]:
    for sec in sections:
        if sec.name in CONTROL_FLOW_KEYWORDS:
            return sec
        found = _control_flow(sec.body or [])
        if found is not None:
            return found
    return None


def _script_block(sec: Section, src: str, tolerant: bool) -> RawStep:
    """A `script { }` block is kept as one opaque step unless it branches or loops."""
    branch = _control_flow(sec.body or [])
    if branch is not None:
        raise UnsupportedFeature(f"Groovy control flow '{branch.name}' in script block", line=branch.line)
    start, end = sec.body_span
    commands = _script_commands(src[start:end])
    if not commands:
        raise PipelineSyntaxError(sec.line, "'script' block is empty")
    return RawStep(name="script", commands=commands, continue_on_failure=tolerant)


def _scan_steps(sections: List[Section], src: str, scan: _StepScan, tolerant: bool = False) -> _StepScan:
    for sec in sections:
        name = sec.name

        if name in GROOVY_KEYWORDS:
            raise UnsupportedFeature(f"Groovy control flow '{name}'", line=sec.line)
        if name == "script" and sec.body is not None:
            scan.steps.append(_script_block(sec, src, tolerant))
            continue
        if name in ("stage", "node", "parallel"):
            raise UnsupportedFeature(f"scripted '{name}' inside steps", line=sec.line)

        if name == "input" and sec.body is None:
            positional, named = call_args(sec, src)
            scan.manual = True
            scan.prompt = named.get("message") or (positional[0] if positional else scan.prompt)
            continue

        if sec.body is not None:
            _scan_steps(sec.body, src, scan, tolerant or name in FAILURE_TOLERANT_WRAPPERS)
            continue

        if name in SHELL_STEPS:
            positional, named = call_args(sec, src)
            script = named.get("script") or (positional[0] if positional else "")
            if not script.strip():
                raise PipelineSyntaxError(sec.line, f"'{name}' step has no script")
            scan.steps.append(RawStep(
                name=named.get("label") or _short(script),
                commands=_script_commands(script),
                continue_on_failure=tolerant or named.get("returnStatus") == "true",
            ))
            continue

        text = _source(src, sec.tokens)
        scan.steps.append(RawStep(
            name=name or _short(text),
            commands=(text,),
            continue_on_failure=tolerant,
        ))
    return scan


def _stage_name(sec: Section, src: str) -> str:
    positional, _named = call_args(sec, src)
    if not positional or not positional[0].strip():
        raise PipelineSyntaxError(sec.line, "stage(...) requires a name")
    return positional[0]


def _input_prompt(sec: Section, src: str) -> Optional[str]:
    for child in sec.body or []:
        if child.name == "message":
            positional, _ = call_args(child, src)
            if positional:
                return positional[0]
    return None


def _when(sec: Section, src: str) -> Optional[str]:
    when = sec.child("when")
    if when is None:
        return None
    start, end = when.body_span
    return " ".join(src[start:end].split()) or None


def _read_stage(sec: Section, src: str, *, stage: str, parallel: bool) -> Tuple[List[RawJob], Optional[str]]:
    """Return the jobs of one `stage(...) { }` block and its `when` condition."""
    name = _stage_name(sec, src)
    condition = _when(sec, src)

    for child in sec.body or []:
        if child.name == "matrix":
            raise UnsupportedFeature("matrix stage", line=child.line)
        if child.name == "stages":
            raise UnsupportedFeature("nested sequential stages", line=child.line)

    manual, prompt = False, None
    input_block = sec.child("input")
    if input_block is not None:
        manual, prompt = True, _input_prompt(input_block, src)

    branches = sec.child("parallel")
    if branches is not None:
        if parallel:
            raise UnsupportedFeature("nested parallel blocks", line=branches.line)
        jobs: List[RawJob] = []
        seen: Dict[str, int] = {}
        for branch in branches.body or []:
            if branch.name == "failFast":
                continue
            if branch.name != "stage" or branch.body is None:
                raise PipelineSyntaxError(branch.line, f"expected stage(...) inside parallel, found '{branch.name}'")
            branch_jobs, branch_when = _read_stage(branch, src, stage=name, parallel=True)
            for job in branch_jobs:
                if job.name in seen:
                    raise PipelineSyntaxError(branch.line, f"duplicate parallel stage name '{job.name}' (first on line {seen[job.name]})")
                seen[job.name] = branch.line
                jobs.append(RawJob(
                    name=job.name,
                    steps=job.steps,
                    stage=name,
                    condition=branch_when,
                    manual=job.manual or manual,
                    prompt=job.prompt or prompt,
                    parallel=True,
                    line=job.line,
                ))
        if not jobs:
            raise PipelineSyntaxError(branches.line, f"parallel block of stage '{name}' is empty")
        return jobs, condition

    steps = sec.child("steps")
    if steps is None:
        raise PipelineSyntaxError(sec.line, f"stage '{name}' has no steps")
    scan = _scan_steps(steps.body or [], src, _StepScan())
    if not scan.steps and not (scan.manual or manual):
        raise PipelineSyntaxError(steps.line, f"stage '{name}' has an empty steps block")

    job = RawJob(
        name=name,
        steps=tuple(scan.steps),
        stage=stage or name,
        manual=manual or scan.manual,
        prompt=prompt or scan.prompt,
        parallel=parallel,
        line=sec.line,
    )
    return [job], condition


def parse(content: str) -> RawPipeline:
    """Parse a declarative Jenkinsfile into a RawPipeline (one stage per `stage` block)."""
    tokens = tokenize(content)
    top, _ = read_sections(tokens)

    pipeline = next((s for s in top if s.name == "pipeline" and s.body is not None), None)
    if pipeline is None:
        scripted = next((s for s in top if s.name == "node" and s.body is not None), None)
        if scripted is not None:
            raise UnsupportedFeature("scripted pipeline (node block)", line=scripted.line)
        raise PipelineSyntaxError(1, "no 'pipeline { ... }' block found")

    stages = pipeline.child("stages")
    if stages is None:
        raise PipelineSyntaxError(pipeline.line, "pipeline has no 'stages' block")

    jobs: List[RawJob] = []
    order: List[str] = []
    conditions: List[Tuple[str, str]] = []
    first_seen: Dict[str, int] = {}

    for sec in stages.body or []:
        if sec.name != "stage" or sec.body is None:
            raise PipelineSyntaxError(sec.line, f"expected stage(...) block, found '{sec.name or _source(content, sec.tokens)}'")
        name = _stage_name(sec, content)
        if name in first_seen:
            raise PipelineSyntaxError(sec.line, f"duplicate stage name '{name}' (first on line {first_seen[name]})")
        first_seen[name] = sec.line

        stage_jobs, condition = _read_stage(sec, content, stage=name, parallel=False)
        jobs.extend(stage_jobs)
        order.append(name)
        if condition:
            conditions.append((name, condition))

    if not order:
        raise PipelineSyntaxError(stages.line, "'stages' block is empty")

    logger.debug("Jenkins pipeline: %d stage(s), %d job(s)", len(order), len(jobs))

    return RawPipeline(
        format=PipelineFormat.JENKINS,
        jobs=tuple(jobs),
        stage_order=tuple(order),
        stage_conditions=tuple(conditions),
    )
