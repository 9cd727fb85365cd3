_NORMAL, _SPACE, _ONE_NEWLINE, _MANY_NEWLINES = range(4)


def reflow(text: str, prefix: str, width: int) -> str:
    """Word-wrap text, putting prefix at the start of every line.

    Lines hold fewer than `width - len(prefix)` characters unless a single
    word is longer. A blank line separates paragraphs and is kept (runs of
    blank lines collapse to one); single newlines and runs of whitespace
    become one space.
    """
    out: list[str] = []
    max_column = width - len(prefix)
    column = 0
    word_start = -1
    word_end = 0
    state = _NORMAL

    def add_word() -> None:
        nonlocal column, word_start
        if word_start < 0:
            return
        word = text[word_start:word_end]
        if column == 0:
            out.append(prefix)
        elif column + len(word) + 1 < max_column:
            out.append(" ")
            column += 1
        else:
            out.append("\n")
            out.append(prefix)
            column = 0
        out.append(word)
        column += len(word)
        word_start = -1

    for i, char in enumerate(text):
        if char in " \r\t":
            if state == _NORMAL:
                add_word()
                state = _SPACE
        elif char == "\n":
            if state == _NORMAL:
                add_word()
                state = _ONE_NEWLINE
            elif state == _SPACE:
                state = _ONE_NEWLINE
            elif state == _ONE_NEWLINE:
                out.append("\n" + prefix + "\n")
                column = 0
                word_start = -1
                state = _MANY_NEWLINES
        else:
            if word_start < 0:
                word_start = i
            word_end = i + 1
            state = _NORMAL
    add_word()

    return "".join(out)
