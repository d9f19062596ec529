from __future__ import annotations

from typing import Dict, List

CODE_LANGUAGES: List[Dict[str, str]] = [
    {"value": "javascript", "label": "JavaScript"},
    {"value": "typescript", "label": "TypeScript"},
    {"value": "python", "label": "Python"},
    {"value": "java", "label": "Java"},
    {"value": "cpp", "label": "C++"},
    {"value": "csharp", "label": "C#"},
    {"value": "go", "label": "Go"},
    {"value": "rust", "label": "Rust"},
    {"value": "html", "label": "HTML"},
    {"value": "css", "label": "CSS"},
    {"value": "json", "label": "JSON"},
    {"value": "sql", "label": "SQL"},
]

LANGUAGE_EXTENSIONS: Dict[str, str] = {
    "javascript": "jsx",
    "typescript": "tsx",
    "python": "py",
    "java": "java",
    "cpp": "cpp",
    "csharp": "cs",
    "go": "go",
    "rust": "rs",
    "html": "html",
    "css": "css",
    "json": "json",
    "sql": "sql",
}


def detect_language(code: str) -> str:
    """Guess a language tag from content markers. Falls back to javascript."""
    lower = code.lower()
    stripped = code.strip()

    if "def " in lower and ":" in lower and "{" not in lower:
        return "python"
    if "fn " in lower and "->" in lower:
        return "rust"
    if "func " in lower and "package " in lower:
        return "go"
    if "public class " in lower or "private class " in lower:
        return "java"
    if "namespace " in lower and "using " in lower:
        return "csharp"
    if "#include" in lower:
        return "cpp"
    if "<html" in lower or "<!doctype" in lower:
        return "html"
    if "select " in lower and "from " in lower:
        return "sql"
    if stripped.startswith("{") or stripped.startswith("["):
        return "json"
    if "function " in lower or "const " in lower or "let " in lower:
        if ": string" in lower or ": number" in lower or "<" in lower:
            return "typescript"
        return "javascript"
    if "@media" in lower or ("{" in lower and ":" in lower and ";" in lower):
        return "css"
    return "javascript"
