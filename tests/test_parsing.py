from app.modules.generation import parsing


def test_delimited_markers_take_priority():
    text = 'noise JSON_START [{"question": "What is DNA?", "answer": "A molecule"}] JSON_END trailing [1, 2]'
    items = parsing.extract_delimited(text)
    assert items == [{"question": "What is DNA?", "answer": "A molecule"}]


def test_fenced_block_with_wrapper_object():
    text = 'Here you go:\n```json\n{"flashcards": [{"front": "Q one", "back": "A one"}]}\n```'
    assert parsing.extract_delimited(text) == [{"front": "Q one", "back": "A one"}]


def test_bare_json_array_inside_prose():
    text = 'Sure! [{"question": "What is RNA?", "answer": "A nucleic acid"}] Hope this helps.'
    assert parsing.extract_bare_json(text) == [{"question": "What is RNA?", "answer": "A nucleic acid"}]


def test_bare_json_repairs_truncated_array():
    text = '[{"question": "What is ATP?", "answer": "Energy currency"}, {"question": "What is ADP?", "answer": "Spent'
    items = parsing.extract_bare_json(text)
    assert items is not None
    assert items[0]["question"] == "What is ATP?"


def test_key_value_tier_recovers_from_broken_json():
    text = '{"question": "What is a cell?", "answer": "Basic unit of life",, "question": "What is a \\"gene\\"?" "answer": "Unit of heredity"'
    items = parsing.extract_key_values(text)
    assert items == [
        {"question": "What is a cell?", "answer": "Basic unit of life"},
        {"question": 'What is a "gene"?', "answer": "Unit of heredity"},
    ]


def test_line_pairs_tier():
    text = "1. Q: What is osmosis?\nA: Diffusion of water\n\nQuestion: What is a membrane?\nAnswer: A barrier"
    assert parsing.extract_line_pairs(text) == [
        {"question": "What is osmosis?", "answer": "Diffusion of water"},
        {"question": "What is a membrane?", "answer": "A barrier"},
    ]


def test_parse_cards_falls_through_tiers():
    assert parsing.parse_cards("Q: What is pH?\nA: Acidity measure") == [
        {"question": "What is pH?", "answer": "Acidity measure"}
    ]
    assert parsing.parse_cards("nothing useful here") == []


def test_parse_questions_ignores_line_heuristics():
    assert parsing.parse_questions("Q: What is pH?\nA: Acidity measure") == []
    raw = '[{"question": "Pick one", "options": ["a", "b", "c", "d"], "correctAnswer": "a"}]'
    assert parsing.parse_questions(raw)[0]["correctAnswer"] == "a"


def test_parse_string_list_json_and_bullets():
    assert parsing.parse_string_list('["Krebs cycle", "Glycolysis"]') == ["Krebs cycle", "Glycolysis"]
    assert parsing.parse_string_list("- Krebs cycle\n2. Glycolysis\n") == ["Krebs cycle", "Glycolysis"]


def test_first_line_strips_quotes():
    assert parsing.first_line('\n  "osmosis in plant cells"\nextra') == "osmosis in plant cells"
