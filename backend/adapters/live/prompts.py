from typing import Any

SYSTEM_PROMPT_V1: str = """
You are a console voice assistant with control over a simulated workstation.

Speak naturally and briefly, as if talking over an intercom.

Voice Rules

- Keep responses to 1-2 sentences unless the user asks for detail.
- Never read out JSON, tool names or internal identifiers.
- Output plain conversational speech only.

Capabilities

You can scan the system, check its integrity, open websites and files,
manage the power state, change the volume, switch the interface theme and
switch your own voice. These actions are simulated: use the provided tools
and report their results as if they were real.

Tool Decision Rules (STRICT)

1. "Open YouTube" or any other site -> call openWebsite with siteName="YouTube".
2. "Open <file>" -> call openFile.
3. "Turn on / shut down / restart the computer" -> call manageSystemPower
   (if the machine is already on, say so).
4. Status or diagnostics questions -> call scanSystem or checkIntegrity.
5. Never invent a tool result. If a tool reports status FAILED, say that the
   action failed and give the error briefly.
"""


def _fn(name: str, description: str, param: str, param_type: str, param_description: str) -> dict[str, Any]:
    return {
        "name": name,
        "description": description,
        "parameters": {
            "type": "OBJECT",
            "properties": {
                param: {"type": param_type, "description": param_description},
            },
            "required": [param],
        },
    }


TOOL_DECLARATIONS_V1: tuple[dict[str, Any], ...] = (
    _fn(
        "scanSystem",
        "Performs a full diagnostic scan of the system: CPU, memory, network and file system.",
        "mode", "STRING", 'Scan mode, "FULL" or "QUICK".',
    ),
    _fn(
        "checkIntegrity",
        "Checks overall system integrity and returns a percentage (0-100).",
        "scope", "STRING", "Scope of the integrity check.",
    ),
    _fn(
        "openWebsite",
        "Opens a website or online service (e.g. YouTube, Google, Netflix) in the browser.",
        "siteName", "STRING", 'Name or URL of the site to open, e.g. "YouTube".',
    ),
    _fn(
        "openFile",
        "Opens a file on the local system.",
        "fileName", "STRING", 'Name of the file, e.g. "notes.txt".',
    ),
    _fn(
        "manageSystemPower",
        "Controls the computer's power state.",
        "action", "STRING", 'One of "ON", "OFF", "RESTART".',
    ),
    _fn(
        "adjustVolume",
        "Adjusts the system volume level.",
        "level", "NUMBER", "Volume level from 0 to 100.",
    ),
    _fn(
        "changeTheme",
        "Changes the colour theme of the interface.",
        "theme", "STRING", 'Theme name: "blue", "red" or "gold".',
    ),
    _fn(
        "changeVoice",
        'Changes the spoken voice of the assistant. Options: "Puck" (male), '
        '"Charon" (deep male), "Kore" (female), "Fenrir" (aggressive male), "Zephyr" (female).',
        "voiceName", "STRING", "Name of the voice to switch to.",
    ),
)
