import re
from urllib.parse import urlparse


class URLUtils:
    """Utility class for handling URLs in chat messages."""

    # Chat clients wrap links in markup before delivering the message
    MARKUP_PATTERNS = [
        r'\[/?URL(?:=[^\]]*)?\]',  # [URL]...[/URL] and [URL=...]
        r'<(https?://[^>\s]+)>',  # <https://...> suppressed embeds
    ]

    # Characters allowed to survive sanitizing
    SAFE_CHARACTERS = set(" .=\t,?!:&/-_%#+~@;")

    @classmethod
    def strip_markup(cls, text: str) -> str:
        """
        Remove link markup added by chat clients.

        Args:
            text: Raw message text

        Returns:
            str: Text with link wrappers removed
        """
        text = re.sub(cls.MARKUP_PATTERNS[0], '', text, flags=re.IGNORECASE)
        return re.sub(cls.MARKUP_PATTERNS[1], r'\1', text)

    @classmethod
    def sanitize(cls, text: str) -> str:
        """
        Strip markup and drop characters that can't be part of a command or link.
        """
        stripped = cls.strip_markup(text)
        cleaned = (' ' if c.isspace() else c for c in stripped)
        return ''.join(c for c in cleaned if c.isalnum() or c in cls.SAFE_CHARACTERS).strip()

    @classmethod
    def is_url(cls, url: str) -> bool:
        """
        Check if a string is syntactically an http(s) URL.

        Args:
            url: The URL to check

        Returns:
            bool: True if the URL has an http(s) scheme and a host
        """
        if not url:
            return False
        try:
            parsed = urlparse(url)
        except ValueError:
            return False
        return parsed.scheme in ('http', 'https') and bool(parsed.netloc)
