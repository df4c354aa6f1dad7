"""Alfred script filter items (https://www.alfredapp.com/help/workflows/inputs/script-filter/json/)."""
from dataclasses import dataclass
from typing import Any, Iterable


@dataclass
class Item:
    title: str
    arg: str
    autocomplete: str
    type: str = "default"

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "title": self.title,
            "arg": self.arg,
            "autocomplete": self.autocomplete,
        }


def key_item(key: str) -> Item:
    return Item(title=key, arg=f"--key {key}", autocomplete=f"--key {key}")


def add_item(*words: str) -> Item:
    """Item for ``add``, ``add <key>`` or ``add <key> <secret>``."""
    flags = ["--key", "--secret"]
    title = " ".join(("add",) + words)
    arg = " ".join(["add"] + [f"{flag} {w}" for flag, w in zip(flags, words)])
    return Item(title=title, arg=arg, autocomplete=arg)


def del_item(key: str) -> Item:
    return Item(title=f"del {key}", arg=f"del --key {key}", autocomplete=f"del --key {key}")


def items_document(items: Iterable[Item]) -> dict[str, Any]:
    return {"items": [it.to_dict() for it in items]}
