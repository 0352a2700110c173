# ABOUTME: Prompt templates and the catalog of game themes the narrator can run.
# ABOUTME: Each theme pairs a system framing prompt with the shared JSON rules and a skybox style.

from pydantic import BaseModel, Field

WELCOME_MESSAGE = (
    "Hi, I'm your adventure game provider! Click the start button below to "
    "start a new game with the current players in the room."
)

NEW_GAME_MESSAGE = "Creating a new game..."

SYSTEM_PROMPT = """
You are a text-based video game based on {theme}.
"""

RULES_PROMPT = """
this are the game rules:
- You'll prompt the player with 4 options: A, B, C and D.
- When I say "end" the game ends.
- The game starts when I say "start".
- If a player dies, they don't play anymore. If all players die, the game ends.
- If a player leaves the game, they don't play anymore. If all players leave, the game ends.
Your output must always be ECMA-404 standard JSON. Follow this example:
{
  scene: "tag for the place where the action is happening",
  prompt: "the game prompt in around 40 words",
  backdrop: "description of the surroundings in around 20-30 words",
  options: { A: "option A", B: "option B", C: "option C", D: "option D" },
  state: "state of the game: started or ended",
  weather: "the weather. Must be one of these: Rain, Wind, Clear or Snow",
  time: "time of the day as a number from 0 to 24",
  type: "genre. Must be one of these: fantasy, action or terror"
}
Update the JSON "scene" every time the scene changes.
You always have to provide 4 options.
"""


class GameTheme(BaseModel):
    """A playable theme: narrator framing plus the skybox style for its scenes"""

    key: str = Field(description="Short identifier used by the start command")
    name: str = Field(description="Human readable theme name, also prefixes image prompts")
    style_id: int = Field(description="Blockade Labs skybox style id")
    system: str = Field(description="System framing message")
    rules: str = Field(default=RULES_PROMPT, description="Rules message describing the JSON protocol")

    def priming_start(self, participant_ids: list[str]) -> str:
        """User message that opens a game for the given players"""
        return f"Start. Players: {', '.join(participant_ids)}"


def _theme(key: str, name: str, style_id: int, source: str) -> GameTheme:
    return GameTheme(
        key=key,
        name=name,
        style_id=style_id,
        system=SYSTEM_PROMPT.format(theme=source),
    )


GAME_THEMES: dict[str, GameTheme] = {
    theme.key: theme
    for theme in (
        _theme("lotr", "Lord Of The Rings", 2, "the Lord Of The Rings books"),
        _theme("hp", "Harry Potter", 5, "the Harry Potter books"),
        _theme("es", "Elder Scrolls", 20, "the Elder Scrolls games"),
        _theme("sw", "Star Wars", 10, "the Star Wars movies"),
        _theme("db", "Dragon Ball", 3, "the Dragon Ball manga"),
        _theme("naruto", "Naruto", 24, "the Naruto anime"),
        _theme("dune", "Dune", 32, "the Dune books"),
        _theme("br", "Blade Runner", 35, "the Blade Runner book"),
    )
}

DEFAULT_THEME = "lotr"


def get_theme(key: str, themes: dict[str, GameTheme] | None = None) -> GameTheme | None:
    """Look up a theme by its start-command key (case-insensitive)"""
    return (themes or GAME_THEMES).get(key.strip().lower())
