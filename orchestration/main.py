"""
Narrative Engine — Console Entry Point

Loads configuration from the environment (.env supported), configures
logging, and runs a small console loop against a single session. The
console stands in for a host game: it has no command interpreter of its
own, so plain commands only exercise event resolution and the director,
and the slash commands drive the rest of the engine directly.

To run: python -m orchestration.main
   or:  narrative-engine
"""

import asyncio
import logging
import os

from dotenv import load_dotenv
from google import genai

from models.world import CharacterSnapshot, LocationSnapshot, NPCSnapshot, WorldSnapshot
from orchestration.engine import NarrativeEngine
from tools.rate_limiter import configure_oracle_limiter

logger = logging.getLogger("NarrativeMain")

# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------
load_dotenv()
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
MODEL_ID = os.getenv("NARRATIVE_MODEL_ID", "gemini-2.0-flash")
DIRECTOR_COMMAND_INTERVAL = int(os.getenv("DIRECTOR_COMMAND_INTERVAL", "21"))
DIRECTOR_MIN_SECONDS = float(os.getenv("DIRECTOR_MIN_SECONDS", "360"))
ORACLE_RETRY_BACKOFF = float(os.getenv("ORACLE_RETRY_BACKOFF", "1.0"))
ORACLE_BURST = int(os.getenv("ORACLE_BURST", "15"))
ORACLE_REQUESTS_PER_MINUTE = float(os.getenv("ORACLE_REQUESTS_PER_MINUTE", "15"))
CHECKPOINT_DIR = os.getenv("NARRATIVE_CHECKPOINT_DIR", "checkpoints")

HELP_TEXT = """Commands:
  /start                     seed leads, run the director, offer a game-start event
  /trigger <context>         offer a trigger context (e.g. item_pickup_legendary_crown)
  /attack <npc-id>           attack an NPC present in the scene
  /say <npc-id> <text>       ingest NPC dialogue and register any lore it mentions
  /memory                    print the memory digest
  /event                     show the active event
  /quit                      save and exit
Anything else is sent as a player command."""


def setup_logging():
    if not os.path.exists("logs"):
        os.makedirs("logs")

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.FileHandler("logs/narrative_engine.log", encoding="utf-8"),
            logging.StreamHandler(),
        ],
    )


def build_engine() -> NarrativeEngine:
    if not GEMINI_API_KEY:
        print("Error: GEMINI_API_KEY not found in environment.")
        gemini_client = None
    else:
        gemini_client = genai.Client(api_key=GEMINI_API_KEY)

    limiter = configure_oracle_limiter(ORACLE_BURST, ORACLE_REQUESTS_PER_MINUTE)
    return NarrativeEngine(
        gemini_client,
        model_id=MODEL_ID,
        limiter=limiter,
        retry_backoff=ORACLE_RETRY_BACKOFF,
        director_command_interval=DIRECTOR_COMMAND_INTERVAL,
        director_min_seconds=DIRECTOR_MIN_SECONDS,
        checkpoint_dir=CHECKPOINT_DIR,
    )


def demo_world() -> WorldSnapshot:
    return WorldSnapshot(
        character=CharacterSnapshot(
            name="Aria",
            concept="a wandering cartographer",
            skills={"Perception": 3, "Athletics": 2},
        ),
        location=LocationSnapshot(
            name="Mistwood Crossing",
            rarity="Rare",
            description="A fog-bound ford where three old roads meet.",
            environment_tags=["forest", "river", "fog"],
        ),
        npcs=[
            NPCSnapshot(id="npc-ferryman", name="Old Tobin", rarity="Epic", description="A ferryman who remembers too much."),
        ],
    )


async def console_loop(engine: NarrativeEngine, session_id: str = "console"):
    world = demo_world()
    session = engine.session(session_id)
    seen = {e.id for e in session.game_log.entries()}
    print(HELP_TEXT)

    while True:
        line = (await asyncio.to_thread(input, "> ")).strip()
        if not line:
            continue
        verb, _, rest = line.partition(" ")

        if verb == "/quit":
            engine.close_session(session_id)
            break
        elif verb == "/start":
            await engine.start_game(session_id, world)
        elif verb == "/trigger":
            await engine.trigger_event(session_id, rest, world)
        elif verb == "/attack":
            await engine.player_action_event(session_id, rest, world)
        elif verb == "/say":
            npc_id, _, text = rest.partition(" ")
            processed, _ = await engine.ingest_text(session_id, text, "dialogue", npc_id, world)
            session.game_log.add("narration", text, processed_text=processed)
        elif verb == "/memory":
            print(engine.context_summary(session_id))
        elif verb == "/event":
            print(engine.active_event(session_id) or "No active event.")
        else:
            await engine.process_command(session_id, line, world)

        for entry in session.game_log.entries():
            if entry.id not in seen:
                seen.add(entry.id)
                print(f"[{entry.type}] {entry.processed_text or entry.text}")


def run():
    setup_logging()
    engine = build_engine()
    try:
        asyncio.run(console_loop(engine))
    except (KeyboardInterrupt, EOFError):
        logger.info("Console closed.")


if __name__ == "__main__":
    run()
