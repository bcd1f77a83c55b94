from typing import List

DISCORD_MESSAGE_LIMIT = 2000

# Boundaries tried in order: paragraphs, sentences, words.
_SEPARATORS = ("\n\n", ". ", " ")


def split_response(response: str, max_length: int = DISCORD_MESSAGE_LIMIT) -> List[str]:
    """
    Split a long response into chunks of at most max_length characters.

    Paragraphs are packed greedily; a paragraph that does not fit on its own is
    split into sentences, and a sentence that does not fit into words. A single
    word longer than max_length is cut into max_length slices so that no chunk
    is ever rejected by the platform.

    Returns:
        Ordered list of stripped, non-empty chunks. Text already within the
        limit is returned as exactly one chunk.
    """
    if max_length < 1:
        raise ValueError(f"max_length must be positive, got {max_length}")

    if len(response) <= max_length:
        return [response.strip()]

    chunks = [chunk.strip() for chunk in _split(response, max_length, 0)]
    return [chunk for chunk in chunks if chunk]


def _split(text: str, max_length: int, level: int) -> List[str]:
    if len(text) <= max_length:
        return [text]

    if level == len(_SEPARATORS):
        return [text[i:i + max_length] for i in range(0, len(text), max_length)]

    separator = _SEPARATORS[level]
    parts = text.split(separator)
    if separator == ". ":
        # keep the period with its sentence, rejoin with the remaining space
        units = [part + "." for part in parts[:-1]] + [parts[-1]]
        joiner = " "
    else:
        units = parts
        joiner = separator

    chunks: List[str] = []
    current = ""
    for unit in units:
        candidate = f"{current}{joiner}{unit}" if current else unit
        if len(candidate) <= max_length:
            current = candidate
            continue

        if current:
            chunks.append(current)

        if not unit.strip():
            current = ""
        elif len(unit) <= max_length:
            current = unit
        else:
            pieces = _split(unit, max_length, level + 1)
            chunks.extend(pieces[:-1])
            current = pieces[-1] if pieces else ""

    if current:
        chunks.append(current)

    return chunks
