"""Practice material: fill-in questions and flashcards drawn from a deck."""
import logging
import random
from typing import List, Optional, Tuple

from kotoba.exceptions import NotFoundError
from kotoba.models.practice_models import (
    FillInQuestion,
    FillInQuestionType,
    Flashcard,
    FlashcardFace,
    FlashcardSide,
)
from kotoba.models.progress_models import ItemKey, VocabularyDeck, VocabularyItem
from kotoba.services.fill_in_scorer import expected_answer

logger = logging.getLogger(__name__)

DEFAULT_QUESTION_COUNT = 10
DEFAULT_FLASHCARD_COUNT = 20
OPTION_COUNT = 4

QUESTION_ROTATION = tuple(FillInQuestionType)

DeckEntry = Tuple[ItemKey, VocabularyItem]


def question_prompt(item: VocabularyItem, question_type: FillInQuestionType) -> str:
    if question_type is FillInQuestionType.MEANING_TO_WORD:
        return f"What is the Japanese word for: {item.meaning}"
    if question_type is FillInQuestionType.WORD_TO_MEANING:
        return f"What is the meaning of: {item.word} ({item.reading})"
    if question_type is FillInQuestionType.READING_TO_WORD:
        return f"Write the kanji for: {item.reading}"
    return f"What is the reading of: {item.word}"


def question_hint(item: VocabularyItem, question_type: FillInQuestionType) -> Optional[str]:
    """First character of the expected answer."""
    answer = expected_answer(item, question_type)
    return answer[:1] or None


def flashcard_sides(item: VocabularyItem, face: FlashcardFace) -> Tuple[FlashcardSide, FlashcardSide]:
    """(front, back) for a face."""
    if face is FlashcardFace.MEANING:
        return (
            FlashcardSide(item.meaning, None, "Meaning"),
            FlashcardSide(item.word, item.reading, "Japanese"),
        )
    if face is FlashcardFace.READING:
        return (
            FlashcardSide(item.reading, None, "Reading"),
            FlashcardSide(item.word, item.meaning, "Japanese"),
        )
    return (
        FlashcardSide(item.word, item.reading, "Japanese"),
        FlashcardSide(item.meaning, None, "Meaning"),
    )


class QuestionGenerator:
    """Selects deck items and turns them into practice material.

    All randomness comes from ``rng`` so a seeded generator is reproducible.
    """

    def __init__(self, rng: Optional[random.Random] = None, seed: Optional[int] = None):
        self.rng = rng if rng is not None else random.Random(seed)

    def select_items(self, deck: VocabularyDeck, section_index: Optional[int], count: int,
                     shuffle: bool) -> List[DeckEntry]:
        """Up to ``count`` items of one section, or of the whole deck when no section is given."""
        if section_index is None:
            entries = list(deck.all_items().items())
        else:
            section = deck.get_section(section_index)
            if section is None:
                raise NotFoundError(f"Section {section_index} not found in deck {deck.deck_id}")
            entries = [(ItemKey(section.index, i), item) for i, item in enumerate(section.items)]

        count = min(count, len(entries))
        if shuffle:
            return self.rng.sample(entries, count)
        return entries[:count]

    def options_for(self, deck: VocabularyDeck, item: VocabularyItem, question_type: FillInQuestionType,
                    option_count: int = OPTION_COUNT) -> Tuple[str, ...]:
        """The correct answer plus up to ``option_count - 1`` answers from other items, shuffled."""
        correct = expected_answer(item, question_type)
        # dict.fromkeys de-duplicates in deck order
        candidates = list(dict.fromkeys(
            expected_answer(other, question_type)
            for other in deck.all_items().values()
            if other.word != item.word
        ))
        candidates = [answer for answer in candidates if answer != correct]
        distractors = self.rng.sample(candidates, min(option_count - 1, len(candidates)))

        options = [correct, *distractors]
        self.rng.shuffle(options)
        return tuple(options)

    def fill_in_questions(self, deck: VocabularyDeck, section_index: Optional[int] = None,
                          count: int = DEFAULT_QUESTION_COUNT, shuffle: bool = True) -> List[FillInQuestion]:
        """Questions cycling through the question types; every other one is multiple choice."""
        questions = []
        for position, (key, item) in enumerate(self.select_items(deck, section_index, count, shuffle)):
            question_type = QUESTION_ROTATION[position % len(QUESTION_ROTATION)]
            options = self.options_for(deck, item, question_type) if position % 2 == 0 else None
            questions.append(FillInQuestion(
                question_id=f"{key}-{question_type.name}",
                section_index=key.section_index,
                item_index=key.item_index,
                question_type=question_type,
                prompt=question_prompt(item, question_type),
                hint=question_hint(item, question_type),
                options=options,
            ))
        logger.debug(f"Generated {len(questions)} fill-in questions from deck {deck.deck_id}")
        return questions

    def flashcards(self, deck: VocabularyDeck, section_index: Optional[int] = None,
                   count: int = DEFAULT_FLASHCARD_COUNT, shuffle: bool = True,
                   face: FlashcardFace = FlashcardFace.WORD) -> List[Flashcard]:
        cards = []
        for key, item in self.select_items(deck, section_index, count, shuffle):
            front, back = flashcard_sides(item, face)
            cards.append(Flashcard(
                card_id=str(key),
                section_index=key.section_index,
                item_index=key.item_index,
                front=front,
                back=back,
                example=item.example,
            ))
        logger.debug(f"Generated {len(cards)} flashcards from deck {deck.deck_id}")
        return cards
