"""Interactive review in the terminal."""

import typer

from tmemo.domain.interfaces import ReviewOperator
from tmemo.domain.models import CardState, Grade, SessionAction

_ANSWERS = {
    "1": Grade.AGAIN,
    "a": Grade.AGAIN,
    "2": Grade.HARD,
    "h": Grade.HARD,
    "3": Grade.GOOD,
    "g": Grade.GOOD,
    "4": Grade.EASY,
    "e": Grade.EASY,
    "b": SessionAction.BURY,
    "bury": SessionAction.BURY,
}
_QUIT = ("q", "quit")


def format_interval(days: int) -> str:
    if days <= 0:
        return "now"
    if days < 30:
        return f"{days}d"
    if days < 365:
        return f"{days / 30:.1f}mo"
    return f"{days / 365:.1f}y"


class TerminalOperator(ReviewOperator):
    """Shows cards with typer.echo and reads answers with typer.prompt."""

    def show_front(self, card: CardState, remaining: int) -> None:
        typer.echo("")
        header = f"[{remaining} left]"
        if card.source:
            header += f" {card.source}"
        typer.secho(header, fg="cyan")
        typer.echo(card.front)

    def show_back(self, card: CardState) -> None:
        typer.prompt("Press Enter to show the answer", default="", show_default=False)
        typer.secho("-" * 40, fg="bright_black")
        typer.echo(card.back)

    def read_grade(self, previews: dict[Grade, int]) -> Grade | SessionAction | None:
        choices = "  ".join(
            f"{grade.value}) {grade.label} ({format_interval(previews[grade])})"
            for grade in Grade
        )
        while True:
            try:
                answer = typer.prompt(
                    f"{choices}  b) Bury  q) Quit", default="", show_default=False
                )
            except typer.Abort:
                return None

            answer = answer.strip().lower()
            if answer in _QUIT:
                return None
            if answer in _ANSWERS:
                return _ANSWERS[answer]
            typer.secho(f"Unrecognized answer {answer!r}. Use 1-4, b or q.", fg="yellow")
