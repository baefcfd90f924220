"""Slack Block Kit message builders."""

from typing import Any, Dict, List, Optional, Sequence, Tuple

Block = Dict[str, Any]

DIVIDER: Block = {"type": "divider"}


def _section(text: str) -> Block:
    return {"type": "section", "text": {"type": "mrkdwn", "text": text}}


def _image_accessory(image_url: str) -> Block:
    return {"type": "image", "image_url": image_url, "alt_text": "Album Art"}


def _button_accessory(value: str, label: str = "Add to Playlist") -> Block:
    return {
        "type": "button",
        "text": {"type": "plain_text", "text": label, "emoji": True},
        "value": value,
    }


def _join_with_dividers(sections: List[Block]) -> List[Block]:
    blocks: List[Block] = []
    for section in sections:
        blocks.extend([section, DIVIDER])
    if blocks:
        blocks.pop()
    return blocks


def message_with_image(text: str, image_url: Optional[str]) -> List[Block]:
    """A single section, with the image as accessory when there is one."""
    section = _section(text)
    if image_url:
        section["accessory"] = _image_accessory(image_url)
    return [section]


def message_with_buttons(options: Sequence[Tuple[str, str]]) -> List[Block]:
    """One section per ``(text, button value)`` pair, separated by dividers."""
    sections = []
    for text, value in options:
        section = _section(text)
        section["accessory"] = _button_accessory(value)
        sections.append(section)
    return _join_with_dividers(sections)


def message_with_images(options: Sequence[Tuple[str, Optional[str]]]) -> List[Block]:
    """One section per ``(text, image url)`` pair, separated by dividers."""
    return _join_with_dividers(
        [message_with_image(text, image_url)[0] for text, image_url in options]
    )
