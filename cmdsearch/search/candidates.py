"""
Command Catalog Lexical Candidate Filter

Narrows the set of commands scored by vector similarity using the FTS5
index over (name, description, keywords, category).

Functions:
    build_match_expression  — Disjunctive FTS5 MATCH expression for tokens
    filter_candidates       — Candidate command ids for a token list

Rules:
    - Candidate filtering only bounds the scored set; it never decides results
    - FTS errors degrade to zero matches, they are not raised
    - Zero matches (or no tokens) fall back to every non-deprecated command
"""

from typing import Optional

import structlog
from sqlalchemy import select, text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session

from cmdsearch.config import settings
from cmdsearch.db.models import Command

logger = structlog.get_logger(__name__)


def build_match_expression(tokens: list[str]) -> str:
    """
    Join tokens into an ``OR`` expression with every token quoted.

    Quoting keeps FTS5 operators and punctuation inside tokens (``fw-ctl``,
    ``cp:conf``) from being parsed as query syntax.
    """
    quoted = ['"{}"'.format(token.replace('"', '""')) for token in tokens if token]
    return " OR ".join(quoted)


def _match_ids(match_expression: str, db: Session, cap: int) -> list[int]:
    rows = db.execute(
        text("SELECT rowid FROM commands_fts WHERE commands_fts MATCH :expr LIMIT :cap"),
        {"expr": match_expression, "cap": cap},
    ).all()
    return [row[0] for row in rows]


def _active_ids(db: Session) -> list[int]:
    return list(
        db.execute(
            select(Command.id).where(Command.deprecated.is_(False)).order_by(Command.id)
        ).scalars().all()
    )


def filter_candidates(
    tokens: list[str],
    db: Session,
    cap: Optional[int] = None,
) -> list[int]:
    """
    Return candidate command ids for the extracted query tokens.

    Args:
        tokens: Output of extract_keywords.
        db: SQLAlchemy session.
        cap: Maximum number of FTS matches.  Defaults to SEARCH_CANDIDATE_LIMIT.

    Returns:
        Up to ``cap`` ids matching any token, or every non-deprecated id when
        no token matched, there were no tokens, or the index query failed.
    """
    if cap is None:
        cap = settings.SEARCH_CANDIDATE_LIMIT

    candidate_ids: list[int] = []
    if tokens:
        expression = build_match_expression(tokens)
        try:
            candidate_ids = _match_ids(expression, db, cap)
        except DBAPIError as exc:
            # FTS syntax errors surface as OperationalError
            logger.warning(
                "fts_query_failed",
                match_expression=expression,
                error=str(exc.orig) if exc.orig is not None else str(exc),
            )
            candidate_ids = []
        logger.info("fts_candidates", token_count=len(tokens), candidate_count=len(candidate_ids))

    if not candidate_ids:
        candidate_ids = _active_ids(db)
        logger.info("fts_fallback_all_active", candidate_count=len(candidate_ids))

    return candidate_ids
