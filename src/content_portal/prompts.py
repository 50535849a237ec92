"""Prompt templates sent to the automation for each brief type."""
from __future__ import annotations

from typing import Iterable

from .models.content import ImageBrief, ScriptBrief, SentimentBrief, VideoScene

SCENE_SEPARATOR = " | "


def script_prompt(brief: ScriptBrief) -> str:
    return "\n".join(
        [
            "Write a script for a social media post.",
            f"Suggested tone: {brief.tone}.",
            f"User instructions: {brief.topic}",
            "Return a clear structure with hooks, body and a call to action.",
        ]
    )


def image_prompt(brief: ImageBrief) -> str:
    return "\n".join(
        [
            "Create an image proposal for social media.",
            f"Requested description: {brief.description}",
            f"Content goals: {', '.join(brief.goals)}",
            "Return a short explanation of the concept and, when possible, the image URL/base64.",
        ]
    )


def sentiment_prompt(brief: SentimentBrief) -> str:
    return "\n".join(
        [
            "Analyze the sentiment of the following text intended for social media.",
            "State whether it is positive, negative or neutral and briefly justify it.",
            f"Text: {brief.text}",
        ]
    )


def video_prompt(scenes: Iterable[VideoScene]) -> str:
    """History summary for a video brief: scene texts joined with `` | ``."""
    return SCENE_SEPARATOR.join(scene.text for scene in scenes)
