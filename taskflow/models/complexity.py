"""Coarse complexity scoring for chat requests."""

from __future__ import annotations

import re
from typing import Literal

from .gateway import ChatRequest

ComplexityLevel = Literal["simple", "medium", "complex"]

CODE_PATTERN = re.compile(r"code|program|algorithm|function|implement|代码|编程|算法", re.IGNORECASE)
ANALYSIS_PATTERN = re.compile(r"analy[sz]|reasoning|logic|evaluat|分析|推理|逻辑", re.IGNORECASE)


def complexity_score(request: ChatRequest) -> int:
    text = request.combined_text()
    length = sum(len(message.content) for message in request.messages)
    score = 0

    if length > 5000:
        score += 3
    elif length > 1000:
        score += 1

    if len(request.messages) > 10:
        score += 2

    if CODE_PATTERN.search(text):
        score += 2

    if ANALYSIS_PATTERN.search(text):
        score += 2

    if request.max_tokens and request.max_tokens > 2000:
        score += 1

    return score


def assess_complexity(request: ChatRequest) -> ComplexityLevel:
    score = complexity_score(request)
    if score >= 5:
        return "complex"
    if score >= 2:
        return "medium"
    return "simple"


__all__ = ["ComplexityLevel", "assess_complexity", "complexity_score"]
