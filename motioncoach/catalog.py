import re

from pydantic import BaseModel, ConfigDict, Field

from .models import UNKNOWN_LABEL


def slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


class Action(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    # Mean normalized error (in torso lengths) that maps to zero quality.
    error_scale: float = Field(1.0, gt=0.0)

    @property
    def label(self) -> str:
        return slugify(self.name)


class Sport(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    icon: str = ""
    actions: tuple[Action, ...]

    @property
    def slug(self) -> str:
        return slugify(self.name)

    def vocabulary(self) -> list[str]:
        """Closed set of labels a classifier may return for this sport."""
        return [a.label for a in self.actions] + [UNKNOWN_LABEL]

    def action(self, label: str) -> Action:
        for a in self.actions:
            if a.label == label:
                return a
        raise KeyError(f"{self.name} has no action {label!r}")


SPORTS = (
    Sport(name="Create", icon="👍", actions=(Action(name="Custom motion"),)),
    Sport(name="Basketball", icon="🏀", actions=(
        Action(name="Jump Shot", error_scale=1.2),
        Action(name="Free Throw", error_scale=0.8),
    )),
    Sport(name="Soccer", icon="⚽", actions=(
        Action(name="Free Kick", error_scale=1.2),
        Action(name="Throw In", error_scale=0.8),
    )),
    Sport(name="Volleyball", icon="🏐", actions=(
        Action(name="Spike", error_scale=1.2),
        Action(name="Volley", error_scale=0.8),
    )),
    Sport(name="Baseball", icon="⚾", actions=(
        Action(name="Swing", error_scale=1.2),
        Action(name="Pitch", error_scale=1.2),
    )),
    Sport(name="Bowling", icon="🎳", actions=(Action(name="Bowl", error_scale=0.8),)),
    Sport(name="Hockey", icon="🏒", actions=(
        Action(name="Shot", error_scale=1.2),
        Action(name="Dribble", error_scale=0.8),
    )),
    Sport(name="Golf", icon="⛳", actions=(Action(name="Swing", error_scale=1.2),)),
)

_BY_SLUG = {sport.slug: sport for sport in SPORTS}


def get_sport(name: str) -> Sport:
    try:
        return _BY_SLUG[slugify(name)]
    except KeyError:
        raise KeyError(f"Unknown sport: {name!r}") from None
