"""
Flashcard decks and cards.

Endpoints:
  POST   /flashcards/decks             — create a deck
  GET    /flashcards/decks             — a user's decks
  GET    /flashcards/decks/{deck_id}   — deck with its cards (owner, or anyone if public)
  PATCH  /flashcards/decks/{deck_id}   — edit deck details
  DELETE /flashcards/decks/{deck_id}   — delete deck, cards and their schedules
  POST   /flashcards                   — add a card to an owned deck and schedule it
  GET    /flashcards/{card_id}         — single card
  PATCH  /flashcards/{card_id}         — edit card content
  DELETE /flashcards/{card_id}         — delete card and its schedule
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone

import aiosqlite
from fastapi import APIRouter, Depends, Query

from unitize.db.sqlite import (
    create_deck,
    delete_deck,
    delete_flashcard,
    get_db,
    get_deck,
    get_flashcard,
    get_flashcard_owner,
    list_deck_cards,
    list_decks,
    update_deck,
    update_flashcard,
)
from unitize.errors import NotFoundError
from unitize.models.flashcard import (
    Deck,
    DeckCreate,
    DeckList,
    DeckUpdate,
    DeckWithCards,
    Flashcard,
    FlashcardCreate,
    FlashcardUpdate,
)
from unitize.services.review_store import ReviewStore, get_review_store

logger = logging.getLogger(__name__)
router = APIRouter()


async def _owned_deck(db: aiosqlite.Connection, deck_id: str, user_id: str) -> Deck:
    deck = await get_deck(db, deck_id)
    if deck is None or deck.user_id != user_id:
        raise NotFoundError(f"Deck {deck_id} not found")
    return deck


async def _owned_card(db: aiosqlite.Connection, card_id: str, user_id: str) -> Flashcard:
    if await get_flashcard_owner(db, card_id) != user_id:
        raise NotFoundError(f"Flashcard {card_id} not found")
    card = await get_flashcard(db, card_id)
    if card is None:
        raise NotFoundError(f"Flashcard {card_id} not found")
    return card


# --- Decks ---


@router.post("/decks", response_model=Deck, status_code=201)
async def create_new_deck(
    body: DeckCreate, db: aiosqlite.Connection = Depends(get_db)
) -> Deck:
    return await create_deck(db, body)


@router.get("/decks", response_model=DeckList)
async def list_user_decks(
    user_id: str = Query(min_length=1),
    db: aiosqlite.Connection = Depends(get_db),
) -> DeckList:
    items = await list_decks(db, user_id)
    return DeckList(items=items, total=len(items))


@router.get("/decks/{deck_id}", response_model=DeckWithCards)
async def get_deck_with_cards(
    deck_id: str,
    user_id: str = Query(min_length=1),
    db: aiosqlite.Connection = Depends(get_db),
) -> DeckWithCards:
    deck = await get_deck(db, deck_id)
    if deck is None or (deck.user_id != user_id and not deck.is_public):
        raise NotFoundError(f"Deck {deck_id} not found")
    cards = await list_deck_cards(db, deck_id)
    return DeckWithCards(deck=deck, cards=cards)


@router.patch("/decks/{deck_id}", response_model=Deck)
async def edit_deck(
    deck_id: str,
    body: DeckUpdate,
    db: aiosqlite.Connection = Depends(get_db),
) -> Deck:
    await _owned_deck(db, deck_id, body.user_id)
    updated = await update_deck(db, deck_id, body)
    if not updated:
        raise NotFoundError(f"Deck {deck_id} not found")
    return updated


@router.delete("/decks/{deck_id}", status_code=204)
async def remove_deck(
    deck_id: str,
    user_id: str = Query(min_length=1),
    db: aiosqlite.Connection = Depends(get_db),
) -> None:
    await _owned_deck(db, deck_id, user_id)
    await delete_deck(db, deck_id)
    logger.info("Deleted deck %s for user %s", deck_id, user_id)


# --- Cards ---


@router.post("", response_model=Flashcard, status_code=201)
async def create_card(
    body: FlashcardCreate,
    db: aiosqlite.Connection = Depends(get_db),
    store: ReviewStore = Depends(get_review_store),
) -> Flashcard:
    await _owned_deck(db, body.deck_id, body.user_id)
    return await store.add_flashcard(body, datetime.now(timezone.utc))


@router.get("/{card_id}", response_model=Flashcard)
async def get_card(
    card_id: str,
    user_id: str = Query(min_length=1),
    db: aiosqlite.Connection = Depends(get_db),
) -> Flashcard:
    return await _owned_card(db, card_id, user_id)


@router.patch("/{card_id}", response_model=Flashcard)
async def edit_card(
    card_id: str,
    body: FlashcardUpdate,
    db: aiosqlite.Connection = Depends(get_db),
) -> Flashcard:
    await _owned_card(db, card_id, body.user_id)
    updated = await update_flashcard(db, card_id, body)
    if not updated:
        raise NotFoundError(f"Flashcard {card_id} not found")
    return updated


@router.delete("/{card_id}", status_code=204)
async def remove_card(
    card_id: str,
    user_id: str = Query(min_length=1),
    db: aiosqlite.Connection = Depends(get_db),
) -> None:
    await _owned_card(db, card_id, user_id)
    await delete_flashcard(db, card_id)
