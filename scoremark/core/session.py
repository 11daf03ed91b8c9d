"""
Session context, roles and piece memberships.
"""
import logging
import secrets
import string
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

from scoremark.core.errors import ValidationError

if TYPE_CHECKING:
    from scoremark.core.annotations.models import Annotation
    from scoremark.core.collaborators import RoleLookup

logger = logging.getLogger(__name__)

ACCESS_CODE_LENGTH = 8
ACCESS_CODE_ALPHABET = string.ascii_uppercase + string.digits


class Role(Enum):
    STUDENT = "student"
    TEACHER = "teacher"


@dataclass(frozen=True)
class Piece:
    """A shared document that annotations are attached to."""
    id: str
    name: str
    access_code: str
    created_by: str


@dataclass
class SessionContext:
    """
    Who is acting, and on which piece.

    The role is looked up per piece every time so a membership change is
    picked up without rebuilding the session.
    """
    actor_id: str
    document_ref: str
    roles: "RoleLookup" = field(repr=False)

    @property
    def role(self) -> Optional[Role]:
        return self.roles.role_in_document(self.actor_id, self.document_ref)

    @property
    def is_teacher(self) -> bool:
        return self.role == Role.TEACHER

    def owns(self, annotation: "Annotation") -> bool:
        return annotation.owner == self.actor_id

    def can_delete(self, annotation: "Annotation") -> bool:
        """Owners may delete their own annotations, teachers any annotation."""
        return self.owns(annotation) or self.is_teacher

    def switch_document(self, document_ref: str) -> None:
        self.document_ref = document_ref


class MembershipDirectory:
    """In-memory pieces, memberships and profiles."""

    def __init__(self):
        self._pieces: Dict[str, Piece] = {}
        self._members: Dict[Tuple[str, str], Role] = {}
        self._names: Dict[str, str] = {}

    def register_profile(self, actor_id: str, name: str) -> None:
        self._names[actor_id] = name

    def display_name(self, actor_id: str) -> str:
        return self._names.get(actor_id, "Unknown")

    def role_in_document(self, actor_id: str, document_ref: str) -> Optional[Role]:
        return self._members.get((document_ref, actor_id))

    def get_piece(self, piece_id: str) -> Optional[Piece]:
        return self._pieces.get(piece_id)

    def create_piece(self, name: str, creator_id: str,
                     role: Role = Role.TEACHER) -> Piece:
        """
        Create a piece and make its creator a member.

        Args:
            name: Display name of the piece
            creator_id: Actor creating the piece
            role: Role the creator takes in the piece

        Returns:
            The new piece, including the access code to share
        """
        if not name.strip():
            raise ValidationError("Please enter a piece name")

        piece = Piece(
            id=f"piece-{uuid.uuid4().hex[:12]}",
            name=name.strip(),
            access_code=self._new_access_code(),
            created_by=creator_id,
        )
        self._pieces[piece.id] = piece
        self._members[(piece.id, creator_id)] = role
        logger.info("Created piece %s (%s) for %s as %s",
                    piece.id, piece.name, creator_id, role.value)
        return piece

    def join_piece(self, access_code: str, actor_id: str,
                   role: Role = Role.STUDENT) -> Piece:
        """
        Join a piece by its access code.

        Raises:
            ValidationError: If the code is unknown or the actor already
                belongs to the piece
        """
        code = access_code.strip().upper()
        if not code:
            raise ValidationError("Please enter an access code")

        piece = next((p for p in self._pieces.values() if p.access_code == code), None)
        if piece is None:
            raise ValidationError("Invalid access code")
        if (piece.id, actor_id) in self._members:
            raise ValidationError(f"Already a member of {piece.name!r}")

        self._members[(piece.id, actor_id)] = role
        logger.info("%s joined piece %s as %s", actor_id, piece.id, role.value)
        return piece

    def add_member(self, piece_id: str, actor_id: str, role: Role) -> None:
        """Set an actor's role in a piece, whether or not the piece is known here."""
        self._members[(piece_id, actor_id)] = role

    def pieces_for(self, actor_id: str) -> List[Tuple[Piece, Role]]:
        """All pieces the actor belongs to, with the actor's role in each."""
        return [
            (self._pieces[piece_id], role)
            for (piece_id, member), role in self._members.items()
            if member == actor_id and piece_id in self._pieces
        ]

    def _new_access_code(self) -> str:
        existing = {p.access_code for p in self._pieces.values()}
        while True:
            code = ''.join(secrets.choice(ACCESS_CODE_ALPHABET)
                           for _ in range(ACCESS_CODE_LENGTH))
            if code not in existing:
                return code
