"""Identity model: bucket owners and buckets. Immutable, compared by value."""
from dataclasses import dataclass, field
from email.utils import formataddr, parseaddr


@dataclass(frozen=True)
class Owner:
    display_name: str = ""
    email_address: str = ""

    @classmethod
    def parse(cls, mailbox: str | None) -> "Owner":
        """Build an owner from 'Name <addr>' (or a bare address). Empty input gives the empty owner."""
        if not mailbox or not mailbox.strip():
            return cls()
        name, addr = parseaddr(mailbox)
        if not addr:
            raise ValueError(f"Invalid owner address: {mailbox!r}")
        return cls(display_name=name, email_address=addr)

    def __str__(self) -> str:
        return formataddr((self.display_name, self.email_address))


@dataclass(frozen=True)
class Bucket:
    """Named namespace of files. Equal iff name and owner match."""

    name: str
    owner: Owner = field(default_factory=Owner)

    def __post_init__(self) -> None:
        if not self.name or "/" in self.name or self.name in (".", ".."):
            raise ValueError(f"Invalid bucket name: {self.name!r}")
