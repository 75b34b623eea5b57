# lexer.py

from enum import Enum
from typing import List, Tuple


class _State(Enum):
    NORMAL = 0
    IN_QUOTE = 1
    ESCAPE = 2


class ArgLexer:
    """
    Shell-like argument splitter.

    A backslash escapes the next character, double quotes toggle quoted mode
    and unquoted whitespace separates tokens. Tokens are consumed one at a
    time so a caller can read a leading script body with different escape
    rules from the arguments that follow it.
    """

    def __init__(self, text: str):
        self.text = text
        self.pos = 0

    def rest(self) -> str:
        return self.text[self.pos:]

    def _skip_space(self):
        while self.pos < len(self.text) and self.text[self.pos].isspace():
            self.pos += 1

    def next_token(self, keep_escapes: bool = False) -> str | None:
        """
        Read the next token, or None at end of input.

        Parameters:
            keep_escapes (bool): Keep the backslash of any escape other than
                \\" so embedded code sees its own escapes unchanged.

        Raises:
            ValueError: If a quote is left open.
        """
        self._skip_space()
        if self.pos >= len(self.text):
            return None

        state = _State.NORMAL
        resume = _State.NORMAL
        buf: List[str] = []
        while self.pos < len(self.text):
            ch = self.text[self.pos]
            self.pos += 1

            if state is _State.ESCAPE:
                if keep_escapes and ch != '"':
                    buf.append("\\")
                buf.append(ch)
                state = resume
            elif ch == "\\":
                resume, state = state, _State.ESCAPE
            elif ch == '"':
                state = _State.NORMAL if state is _State.IN_QUOTE else _State.IN_QUOTE
            elif ch.isspace() and state is _State.NORMAL:
                break
            else:
                buf.append(ch)

        if state is _State.IN_QUOTE or (state is _State.ESCAPE and resume is _State.IN_QUOTE):
            raise ValueError("unterminated quoted string")
        if state is _State.ESCAPE:
            # Trailing lone backslash is kept literally
            buf.append("\\")
        return "".join(buf)

    def tokens(self) -> List[str]:
        out = []
        while True:
            tok = self.next_token()
            if tok is None:
                return out
            out.append(tok)


def split_args(text: str) -> List[str]:
    """Split `text` into arguments honouring quotes and backslash escapes."""
    return ArgLexer(text).tokens()


def split_script_and_args(text: str) -> Tuple[str, List[str]]:
    """
    Split `"<script>" arg arg ...` into the script body and its arguments.

    Inside the script only \\" is unescaped; other backslash sequences are
    passed through so the script's own string escapes keep working.

    Raises:
        ValueError: If the script is not enclosed in double quotes.
    """
    lexer = ArgLexer(text)
    if not lexer.rest().lstrip().startswith('"'):
        raise ValueError("invalid script format: script must be enclosed in quotes")
    script = lexer.next_token(keep_escapes=True)
    return script or "", lexer.tokens()
