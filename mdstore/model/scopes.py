from enum import Enum
from typing import Optional

from mdstore.errors import ValidationError


class Scope(str, Enum):
    """
    The two independent storage domains. Each has its own root directory and index.
    """

    project = "project"
    shared = "shared"

    @classmethod
    def parse(cls, value: "Scope | str") -> "Scope":
        if isinstance(value, Scope):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValidationError(
                f"Invalid scope: '{value}' (expected one of: {', '.join(s.value for s in cls)})",
                {"scope": value},
            )

    @classmethod
    def parse_optional(cls, value: "Scope | str | None") -> Optional["Scope"]:
        return None if value is None else cls.parse(value)

    def __str__(self):
        return self.value


## Tests


def test_scope_parse():
    assert Scope.parse("project") == Scope.project
    assert Scope.parse(" Shared ") == Scope.shared
    assert Scope.parse_optional(None) is None
    try:
        Scope.parse("global")
        assert False
    except ValidationError as e:
        assert e.details == {"scope": "global"}
