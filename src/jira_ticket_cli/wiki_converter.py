"""
JIRA wiki markup to Markdown converter for jira-ticket-cli
Detects legacy JIRA wiki markup and rewrites it as Markdown so it can be
converted to ADF like any other Markdown input
"""

import re
from typing import List, Optional

# Signatures that only occur in wiki markup
_WIKI_PATTERNS = (
    re.compile(r'^h[1-6]\.\s', re.M),                          # h1. heading
    re.compile(r'\{\{[^}]+\}\}'),                               # {{monospace}}
    re.compile(r'\{code[^}]*\}[\s\S]*?\{code\}'),               # {code}...{code}
    re.compile(r'\{noformat\}[\s\S]*?\{noformat\}'),            # {noformat}...{noformat}
    re.compile(r'\{quote\}[\s\S]*?\{quote\}'),                  # {quote}...{quote}
    re.compile(r'\[[^\]|]+\|[^\]]+\]'),                         # [text|url]
    re.compile(r'![^\s!|]+\.[A-Za-z0-9]+(?:\|[^!\n]*)?!'),      # !image.png!
    re.compile(r'^bq\.\s', re.M),                               # bq. quote
    re.compile(r'^\|\|', re.M),                                 # ||table header||
)

# "# item" is a wiki numbered list but also a Markdown heading
_HASH_LINE = re.compile(r'^#+\s+[^#]', re.M)
_NUMBERED_ITEM = re.compile(r'^#{1,2} (.*)$')
_NUMBERED_ITEM_MAX_LENGTH = 80

# Leading "* " bullets exist in both syntaxes and never decide on their own.

_HEADING = re.compile(r'^h([1-6])\.[ \t]*(.*)$', re.M)
_CODE_BLOCK = re.compile(r'(?<!\{)\{code(?::([^}]*))?\}(.*?)\{code\}', re.S)
_NOFORMAT_BLOCK = re.compile(r'\{noformat\}(.*?)\{noformat\}', re.S)
_QUOTE_BLOCK = re.compile(r'\{quote\}(.*?)\{quote\}', re.S)
_FENCE = re.compile(r'^```.*?^```[ \t]*$', re.M | re.S)
_STASHED = re.compile(r'\x00(\d+)\x00')
_CODE_SPAN = re.compile(r'`[^`\n]+`')
# Markdown link targets, autolinks and bare URLs
_LINK_TARGET = re.compile(r'\]\([^)\s]*\)|<https?://[^>\s]+>|https?://[^\s<>()\[\]]+')
_MONOSPACE = re.compile(r'\{\{([^}]+)\}\}')
_LINK = re.compile(r'\[([^\]|]+)\|([^\]]+)\]')
_BARE_LINK = re.compile(r'(?<!!)\[(https?://[^\]|\s]+)\](?!\()')
_IMAGE = re.compile(r'!([^\s!|]+\.[A-Za-z0-9]+)(?:\|([^!\n]*))?!')
_STRIKETHROUGH = re.compile(r'(?<![\w-])-([^\s-](?:[^-\n]*[^\s-])?)-(?![\w-])')
_UNDERLINE = re.compile(r'(?<![\w+])\+([^\s+](?:[^+\n]*[^\s+])?)\+(?![\w+])')
_SUBSCRIPT = re.compile(r'(?<!~)~([^\s~](?:[^~\n]*[^\s~])?)~(?!~)')
_SUPERSCRIPT = re.compile(r'\^([^\s^](?:[^^\n]*[^\s^])?)\^')
_CITATION = re.compile(r'\?\?([^?\n]+)\?\?')
_BLOCKQUOTE = re.compile(r'^bq\.[ \t]*(.*)$', re.M)
_BULLET_ITEM = re.compile(r'^([ \t]*)(\*+) (.*)$')
_TABLE_HEADER = re.compile(r'^[ \t]*\|\|(.*)\|\|[ \t]*$')
_HORIZONTAL_RULE = re.compile(r'^-{4,}[ \t]*$', re.M)


def is_wiki_markup(text: Optional[str]) -> bool:
    """
    Detect whether text is JIRA wiki markup rather than Markdown/plain text

    Args:
        text: Text to classify

    Returns:
        True if wiki markup signatures were found
    """
    if not text:
        return False

    for pattern in _WIKI_PATTERNS:
        if pattern.search(text):
            return True

    if _HASH_LINE.search(text):
        return _looks_like_wiki_numbered_list(text)

    return False


def _looks_like_wiki_numbered_list(text: str) -> bool:
    """
    Decide between "# item" numbered lists and "# Title" Markdown headings

    A single "#" line is taken as a heading; two or more short "#"/"##"
    lines are taken as a wiki numbered list.
    """
    count = 0
    for line in text.split('\n'):
        match = _NUMBERED_ITEM.match(line.strip())
        if not match:
            continue
        rest = match.group(1).strip()
        if len(rest) < _NUMBERED_ITEM_MAX_LENGTH and '#' not in rest:
            count += 1
            if count >= 2:
                return True
    return False


def wiki_to_markdown(wiki: Optional[str]) -> str:
    """
    Convert JIRA wiki markup to Markdown

    Wiki numbered lists ("# item") are left untouched because "#" also
    starts a Markdown heading; write "1. item" instead.

    Args:
        wiki: JIRA wiki markup text

    Returns:
        Converted Markdown text
    """
    if not wiki:
        return ""

    result = _convert_headings(wiki)
    result = _convert_code_blocks(result)
    result = _convert_noformat_blocks(result)
    result = _convert_quote_blocks(result)

    # Code and link targets are restored verbatim after the inline rewrites
    stash: List[str] = []
    result = _stash(_FENCE, result, stash)

    result = _convert_monospace(result)
    result = _stash(_CODE_SPAN, result, stash)
    result = _convert_links(result)
    result = _convert_images(result)
    result = _stash(_LINK_TARGET, result, stash)
    result = _convert_text_effects(result)
    result = _convert_blockquotes(result)
    result = _convert_lines(result)
    result = _HORIZONTAL_RULE.sub('---', result)

    return _restore(result, stash)


def _convert_headings(text: str) -> str:
    """h1. Title -> # Title"""
    return _HEADING.sub(lambda m: '#' * int(m.group(1)) + ' ' + m.group(2), text)


def _trim_block(content: str) -> str:
    """Drop one leading and one trailing newline from a block body"""
    if content.startswith('\n'):
        content = content[1:]
    if content.endswith('\n'):
        content = content[:-1]
    return content


def _code_language(params: Optional[str]) -> str:
    """Pick the language out of {code:java|title=Foo.java} parameters"""
    if not params:
        return ''
    for param in params.split('|'):
        param = param.strip()
        if param and '=' not in param:
            return param
    return ''


def _convert_code_blocks(text: str) -> str:
    """{code:lang}...{code} -> fenced code block"""
    def _replace(match):
        lang = _code_language(match.group(1))
        return '```' + lang + '\n' + _trim_block(match.group(2)) + '\n```'

    return _CODE_BLOCK.sub(_replace, text)


def _convert_noformat_blocks(text: str) -> str:
    """{noformat}...{noformat} -> fenced code block without language"""
    return _NOFORMAT_BLOCK.sub(lambda m: '```\n' + _trim_block(m.group(1)) + '\n```', text)


def _convert_quote_blocks(text: str) -> str:
    """{quote}...{quote} -> "> " prefixed lines"""
    def _replace(match):
        lines = match.group(1).strip().split('\n')
        return '\n'.join('> ' + line for line in lines)

    return _QUOTE_BLOCK.sub(_replace, text)


def _stash(pattern: re.Pattern, text: str, stash: List[str]) -> str:
    """Replace each match with a numbered placeholder"""
    def _replace(match):
        stash.append(match.group(0))
        return f'\x00{len(stash) - 1}\x00'

    return pattern.sub(_replace, text)


def _restore(text: str, stash: List[str]) -> str:
    if not stash:
        return text
    return _STASHED.sub(lambda m: _restore(stash[int(m.group(1))], stash), text)


def _convert_monospace(text: str) -> str:
    """{{text}} -> `text`"""
    return _MONOSPACE.sub(r'`\1`', text)


def _convert_links(text: str) -> str:
    """[text|url] -> [text](url), [url] -> <url>"""
    text = _LINK.sub(r'[\1](\2)', text)
    return _BARE_LINK.sub(r'<\1>', text)


def _image_alt(attrs: Optional[str]) -> str:
    if not attrs:
        return ''
    for attr in attrs.split(','):
        attr = attr.strip()
        if attr.startswith('alt='):
            return attr[len('alt='):].strip().strip('"\'')
    return ''


def _convert_images(text: str) -> str:
    """!image.png! -> ![](image.png), !image.png|alt=Logo! -> ![Logo](image.png)"""
    return _IMAGE.sub(lambda m: f'![{_image_alt(m.group(2))}]({m.group(1)})', text)


def _convert_text_effects(text: str) -> str:
    """Strikethrough, underline, subscript, superscript and citations"""
    text = _STRIKETHROUGH.sub(r'~~\1~~', text)
    text = _UNDERLINE.sub(r'<u>\1</u>', text)
    text = _SUBSCRIPT.sub(r'<sub>\1</sub>', text)
    text = _SUPERSCRIPT.sub(r'<sup>\1</sup>', text)
    return _CITATION.sub(r'<cite>\1</cite>', text)


def _convert_blockquotes(text: str) -> str:
    """bq. text -> > text"""
    return _BLOCKQUOTE.sub(r'> \1', text)


def _convert_lines(text: str) -> str:
    """Line-oriented rewrites: bullet lists and table header rows"""
    return '\n'.join(_convert_line(line) for line in text.split('\n'))


def _convert_line(line: str) -> str:
    bullet = _BULLET_ITEM.match(line)
    if bullet:
        indent, stars, item = bullet.groups()
        return indent + '  ' * (len(stars) - 1) + '- ' + item

    header = _TABLE_HEADER.match(line)
    if header:
        cells = [cell.strip() for cell in header.group(1).split('||')]
        return '| ' + ' | '.join(cells) + ' |\n' + '|' + ' --- |' * len(cells)

    return line
