"""txt_forge: merge a project's source files into LLM-sized text chunks."""

__version__ = "1.0.0"
