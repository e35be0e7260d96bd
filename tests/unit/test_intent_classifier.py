import json

from prompt_prep.intent import IntentClassifier, load_lexicon, load_rules, tokenize
from prompt_prep.types import IntentRule, LexiconEntry, ProcessingContext


def _lexicon() -> list[LexiconEntry]:
    return [
        LexiconEntry(canonical="vehicle", synonyms=frozenset({"vehicle", "rav4", "cr-v", "suv"})),
        LexiconEntry(canonical="travel", synonyms=frozenset({"travel", "itinerary", "national park"})),
        LexiconEntry(canonical="legacy", synonyms=frozenset({"legacy", "rav4"}), active=False),
    ]


def test_tokenizer_emits_words_bigrams_and_han_ngrams() -> None:
    assert tokenize("Compare RAV4 vs CR-V") == [
        "compare",
        "rav4",
        "vs",
        "cr-v",
        "compare rav4",
        "rav4 vs",
        "vs cr-v",
    ]

    han = tokenize("保险成本")
    assert han[0] == "保险成本"
    assert {"保", "险", "成", "本", "保险", "险成", "成本", "保险成", "险成本"} <= set(han)
    assert tokenize("   ") == []


def test_greeting_without_rules() -> None:
    classifier = IntentClassifier(rules=[], lexicon=[])
    ctx = ProcessingContext(raw_input="Hello there!", normalized="Hello there!", index_text="hello there")

    classifier.apply(ctx)

    assert ctx.intent == "GREETING"
    assert "intent:greeting" in ctx.tags
    assert ctx.steps[-1].name == "intent-classifier"


def test_lexicon_synonyms_score_rules_and_tag_canonicals() -> None:
    rules = [
        IntentRule(name="cars", intent="VEHICLE", any_of=("vehicle", "msrp"), tags_boost=("vehicle",)),
        IntentRule(name="trips", intent="TRAVEL", any_of=("travel",)),
    ]
    classifier = IntentClassifier(rules=rules, lexicon=_lexicon())

    result = classifier.classify("what is the msrp of a rav4")

    assert result.intent == "VEHICLE"
    assert result.rule == "cars"
    assert result.score == 3
    assert result.tags == ["vehicle"]
    assert result.keywords == ["vehicle"]


def test_all_none_and_min_score() -> None:
    rules = [
        IntentRule(name="rental", intent="RENTAL", min_score=3, any_of=("rental",), all_of=("car", "rental")),
        IntentRule(name="buy", intent="VEHICLE", any_of=("car",), none_of=("rental",)),
    ]
    classifier = IntentClassifier(rules=rules, lexicon=[])

    assert classifier.classify("car rental in denver").intent == "RENTAL"
    assert classifier.classify("buy a car").intent == "VEHICLE"
    assert classifier.classify("weather today").intent == "UNKNOWN"


def test_first_rule_wins_on_score_tie() -> None:
    rules = [
        IntentRule(name="first", intent="ALPHA", any_of=("python",)),
        IntentRule(name="second", intent="BETA", any_of=("python",)),
    ]
    classifier = IntentClassifier(rules=rules, lexicon=[])

    assert classifier.classify("python question").intent == "ALPHA"


def test_exactly_one_intent_tag_replaces_previous_one() -> None:
    classifier = IntentClassifier(
        rules=[IntentRule(name="code", intent="CODE", any_of=("python",))], lexicon=[]
    )
    ctx = ProcessingContext(raw_input="python help", index_text="python help", tags=["intent:old", "beta"])

    classifier.apply(ctx)

    intent_tags = [t for t in ctx.tags if t.startswith("intent:")]
    assert intent_tags == ["intent:code"]
    assert "beta" in ctx.tags


def test_empty_text_keeps_unknown() -> None:
    ctx = ProcessingContext(raw_input="", index_text="", normalized="")

    IntentClassifier(rules=[], lexicon=[]).apply(ctx)

    assert ctx.intent == "UNKNOWN"
    assert ctx.tags == ["intent:unknown"]
    assert "empty text" in ctx.steps[-1].note


def test_falls_back_to_normalized_text_for_han_input() -> None:
    classifier = IntentClassifier(
        rules=[IntentRule(name="ins", intent="INSURANCE", any_of=("保险",))], lexicon=[]
    )
    ctx = ProcessingContext(raw_input="保险成本", normalized="保险成本", index_text="")

    classifier.apply(ctx)

    assert ctx.intent == "INSURANCE"


def test_bundled_resources_load() -> None:
    rules = load_rules()
    lexicon = load_lexicon()

    assert rules and rules[0].intent == "VEHICLE"
    assert all(rule.intent == rule.intent.upper() for rule in rules)
    assert any(entry.canonical == "vehicle" and "rav4" in entry.synonyms for entry in lexicon)
    assert any(not entry.active for entry in lexicon)


def test_malformed_resources_degrade_to_empty(tmp_path, monkeypatch) -> None:
    broken = tmp_path / "rules.json"
    broken.write_text("{not json", encoding="utf-8")
    missing = tmp_path / "missing.json"
    monkeypatch.setenv("PROMPT_PREP_LEXICON", str(missing))

    assert load_rules(broken) == []
    assert load_lexicon() == []

    classifier = IntentClassifier(rules=load_rules(broken), lexicon=load_lexicon())
    assert classifier.classify("good morning").intent == "GREETING"


def test_rule_file_aliases(tmp_path) -> None:
    path = tmp_path / "rules.json"
    path.write_text(
        json.dumps(
            {"rules": [{"intent": "tax", "minScore": 2, "any": ["IRS", "Refund"], "tagsBoost": []}]}
        ),
        encoding="utf-8",
    )

    (rule,) = load_rules(path)

    assert rule.intent == "TAX"
    assert rule.min_score == 2
    assert rule.any_of == ("irs", "refund")
    assert rule.name == "tax-1"
