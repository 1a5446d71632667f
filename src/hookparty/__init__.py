"""hookparty - watch coding-assistant sessions and talk back to them.

A small local daemon that receives lifecycle hooks from coding-assistant
sessions, keeps live session state in memory, fans notifications out to
desktop and chat channels, and routes replies back into the right session.
"""

__version__ = "0.3.0"
