from logic_mcp.knowledge_base import KnowledgeBase

FACTS = """
% Facts
animal(cat).
animal(dog)

   % indented comment
has_fur(cat).
mammal(X) :- animal(X), has_fur(X)
"""


def test_load_normalizes_in_order():
    kb = KnowledgeBase()
    added = kb.load(FACTS)

    assert added == 4
    assert kb.snapshot() == (
        "animal(cat).",
        "animal(dog).",
        "has_fur(cat).",
        "mammal(X) :- animal(X), has_fur(X).",
    )


def test_load_appends_to_existing_statements():
    kb = KnowledgeBase()
    kb.load("a(1).")
    kb.load("b(2).\na(3).")
    assert kb.snapshot() == ("a(1).", "b(2).", "a(3).")
    assert len(kb) == 3


def test_reloading_normalized_text_is_unchanged():
    kb = KnowledgeBase()
    kb.load(FACTS)
    again = KnowledgeBase()
    again.load(kb.render())
    assert again.snapshot() == kb.snapshot()


def test_malformed_prolog_is_accepted():
    kb = KnowledgeBase()
    assert kb.load("this is (not prolog") == 1
    assert kb.snapshot() == ("this is (not prolog.",)


def test_blank_and_comment_only_text_adds_nothing():
    kb = KnowledgeBase()
    assert kb.load("\n\n% only a comment\n   \n") == 0
    assert kb.snapshot() == ()


def test_clear_is_idempotent():
    kb = KnowledgeBase()
    kb.load(FACTS)
    kb.clear()
    assert kb.snapshot() == ()
    kb.clear()
    assert kb.snapshot() == ()
    assert kb.render() == ""


def test_snapshot_is_a_copy():
    kb = KnowledgeBase()
    kb.load("a(1).")
    snapshot = kb.snapshot()
    kb.load("b(2).")
    assert snapshot == ("a(1).",)
