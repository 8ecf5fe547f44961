# Copyright (C) 2021 The Profilekeep Contributors
#
# This file is part of Profilekeep.
#
# Profilekeep is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# Profilekeep is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License
# along with Profilekeep.  If not, see <http://www.gnu.org/licenses/>.
"""`EmailAddressValidator`: checks e-mail address syntax against a subset of RFC 2822.

The address is split at the last "@" into the local part and the domain part.

Local part rules:

- it is made of sections split by ".", a section starting with '"' is quoted and runs to the next unescaped '"'
  which is followed by "." or the end;
- inside a quoted section, "\\" must be followed by "\\" or '"', and '"' must be escaped;
- unquoted sections cannot contain whitespace or any of `(,:;<>@[]\\`;
- only ASCII letters, digits and `.!#$%&'*+-/=?^_\\`{|}~"(),:;<>@[\\] ` are allowed at all.

Domain part rules: either a hostname (labels of letters, digits and inner hyphens) or an IP literal in brackets,
like `[127.0.0.1]` or `[IPv6:::1]`.

Related:

- [RFC 2822 - Internet Message Format](https://tools.ietf.org/html/rfc2822)
"""
import ipaddress
import re
import string
from dataclasses import dataclass
from typing import List

MAX_ADDRESS_LENGTH = 254
MAX_LOCAL_PART_LENGTH = 64
MAX_DOMAIN_PART_LENGTH = 253

LOCAL_PART_VALID_CHARS = frozenset(
    ".!#$%&'*+-/=?^_`{|}~\"(),:;<>@[\\] " + string.ascii_letters + string.digits
)

_UNQUOTED_RESTRICTED = re.compile(r"[\s(,:;<>@\[\]\\]")
_HOSTNAME = re.compile(
    r"(([a-zA-Z0-9]|[a-zA-Z0-9][a-zA-Z0-9\-]*[a-zA-Z0-9])\.)*"
    r"([a-zA-Z0-9]|[a-zA-Z0-9][a-zA-Z0-9\-]*[a-zA-Z0-9])"
)


@dataclass
class LocalPartSection(object):
    """One section of a local part.

    Attributes:
        text: `str`. The section, including the quotes if it is quoted.
        quoted: `bool`.
    """

    text: str
    quoted: bool


def split_local_part(local_part: str) -> List[LocalPartSection]:
    """Split `local_part` into sections. Dots inside quoted sections do not split.

    An opening quote without a matching closing one starts an unquoted section which runs to the next ".".
    Empty sections are dropped.
    """
    sections: List[LocalPartSection] = []
    length = len(local_part)
    cursor = 0
    while cursor < length:
        end = -1
        if local_part[cursor] == '"':
            i = cursor + 1
            while i < length:
                c = local_part[i]
                if c == "\\":
                    i += 2
                    continue
                if c == '"' and (i + 1 == length or local_part[i + 1] == "."):
                    end = i + 1
                    break
                i += 1
        if end > 0:
            sections.append(LocalPartSection(local_part[cursor:end], True))
        else:
            end = local_part.find(".", cursor)
            if end < 0:
                end = length
            if end > cursor:
                sections.append(LocalPartSection(local_part[cursor:end], False))
        cursor = end + 1
    return sections


def _check_quoted_section(section: str) -> bool:
    content = section[1:-1]
    i = 0
    while i < len(content):
        c = content[i]
        if c == "\\":
            if i + 1 >= len(content) or content[i + 1] not in ('"', "\\"):
                return False
            i += 2
            continue
        if c == '"':
            return False
        i += 1
    return True


class EmailAddressValidator(object):
    """Validate e-mail addresses. See the module documentation for the grammar.

    The validator has no state, one instance can be shared freely.
    """

    def is_valid(self, address: str) -> bool:
        """Check if `address` is a valid e-mail address. Never raises for malformed input."""
        if not isinstance(address, str):
            return False
        if len(address) == 0 or len(address) > MAX_ADDRESS_LENGTH:
            return False
        at_index = address.rfind("@")
        if at_index <= 0:
            return False
        local_part = address[:at_index]
        domain_part = address[at_index + 1 :]
        if (
            len(local_part) > MAX_LOCAL_PART_LENGTH
            or len(domain_part) > MAX_DOMAIN_PART_LENGTH
        ):
            return False
        return (
            self.check_local_part_sections(local_part)
            and self.check_local_part_chars(local_part)
            and self.check_domain_part(domain_part)
        )

    def check_local_part_sections(self, local_part: str) -> bool:
        """Check every section of `local_part` for escapes and restricted characters."""
        for section in split_local_part(local_part):
            if section.quoted:
                if not _check_quoted_section(section.text):
                    return False
            elif _UNQUOTED_RESTRICTED.search(section.text):
                return False
        return True

    def check_local_part_chars(self, local_part: str) -> bool:
        return all(c in LOCAL_PART_VALID_CHARS for c in local_part)

    def check_domain_part(self, domain_part: str) -> bool:
        if not domain_part:
            return False
        if domain_part[0] == "[":
            return self.check_ip_literal(domain_part)
        return _HOSTNAME.fullmatch(domain_part) is not None

    def check_ip_literal(self, domain_part: str) -> bool:
        """Check a bracketed IP address literal, like `[192.0.2.1]` or `[IPv6:2001:db8::1]`."""
        if len(domain_part) < 3 or domain_part[0] != "[" or domain_part[-1] != "]":
            return False
        literal = domain_part[1:-1]
        if literal.startswith("IPv6:"):
            literal = literal[len("IPv6:") :]
        try:
            ipaddress.ip_address(literal)
        except ValueError:
            return False
        return True


_shared_validator = EmailAddressValidator()


def is_valid_email_address(address: str) -> bool:
    """Shortcut for `EmailAddressValidator().is_valid(address)`."""
    return _shared_validator.is_valid(address)
