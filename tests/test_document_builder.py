import pytest
from datetime import datetime, timedelta, timezone

from search_do.core.document_builder import DocumentBuilder, attribute_name, format_value
from search_do.core.search_config import SearchConfig

from sample_models import Article, Notification


class Entry:
    def __init__(self, id, body, published=None):
        self.id = id
        self.body = body
        self.published = published

    def summary(self):
        return self.body[:5]


class TestAttributeNames:
    """Test the reserved attribute name table."""

    @pytest.mark.parametrize("name", ["uri", "cdate", "mdate", "title", "author", "type", "misc"])
    def test_reserved_names_get_prefix(self, name):
        assert attribute_name(name) == f"@{name}"

    def test_other_names_verbatim(self):
        assert attribute_name("custom_attribute") == "custom_attribute"
        assert attribute_name("db_id") == "db_id"


class TestFormatValue:
    """Test attribute value formatting."""

    def test_none_is_empty(self):
        assert format_value(None) == ""

    def test_naive_datetime_is_utc(self):
        assert format_value(datetime(2008, 9, 17)) == "2008-09-17T00:00:00+00:00"

    def test_fraction_is_dropped(self):
        assert format_value(datetime(2008, 9, 17, 1, 2, 3, 456789)) == "2008-09-17T01:02:03+00:00"

    def test_aware_datetime_keeps_offset(self):
        tokyo = timezone(timedelta(hours=9))
        assert format_value(datetime(2008, 9, 17, 9, tzinfo=tokyo)) == "2008-09-17T09:00:00+09:00"

    def test_other_values_use_str(self):
        assert format_value(42) == "42"
        assert format_value("text") == "text"


class TestDocumentBuilder:
    """Test projection of records into index documents."""

    def test_article_document(self):
        article = Article(
            id=7,
            title="Hello",
            body="World",
            category="news",
            created_at=datetime(2008, 9, 17),
            updated_at=datetime(2008, 9, 17, 12, 30, 15, 123),
        )

        doc = Article.search_index.build_document(article)

        assert doc.texts == ["Hello", "World"]
        assert doc.db_id == "7"
        assert doc.uri == "/Article/7"
        assert doc.attr("@title") == "Hello"
        assert doc.attr("custom_attribute") == "news"
        assert doc.attr("@cdate") == "2008-09-17T00:00:00+00:00"
        assert doc.attr("@mdate") == "2008-09-17T12:30:15+00:00"
        assert "type_base" not in doc.attrs

    def test_subtype_document(self):
        notification = Notification(id=8, title="Ping", body="Pong")

        doc = Notification.search_index.build_document(notification)

        assert doc.attr("type_base") == "Article"
        assert doc.uri == "/Notification/8"
        assert doc.db_id == "8"

    def test_none_text_is_empty_block(self):
        article = Article(id=1, title=None, body="only body")

        doc = Article.search_index.build_document(article)

        assert doc.texts == ["", "only body"]

    def test_methods_and_callables(self):
        config = SearchConfig(
            model_class=Entry,
            searchable_fields=["body", "summary"],
            attributes_to_store={
                "author": lambda record: "alice",
                "published": None,
                "misc": "summary",
            },
        )

        doc = DocumentBuilder(config).build(Entry(3, "Hello world"))

        assert doc.texts == ["Hello world", "Hello"]
        assert doc.attr("@author") == "alice"
        assert doc.attr("published") == ""
        assert doc.attr("@misc") == "Hello"
        assert doc.uri == "/Entry/3"

    def test_missing_accessor_raises_at_build_time(self):
        config = SearchConfig(model_class=Entry, searchable_fields=["headline"])

        with pytest.raises(AttributeError):
            DocumentBuilder(config).build(Entry(1, "text"))


class TestSearchConfig:
    """Test per-model configuration."""

    def test_timestamps_come_first(self):
        assert list(Article.__search_config__.attributes_to_store) == [
            "cdate", "mdate", "title", "custom_attribute",
        ]

    def test_explicit_attribute_overrides_timestamp(self):
        config = SearchConfig(model_class=Article, attributes_to_store={"mdate": "created_at"})
        config.record_timestamps()

        assert config.attributes_to_store["mdate"] == "created_at"
        assert config.attributes_to_store["cdate"] == "created_at"

    def test_no_timestamp_columns(self):
        config = SearchConfig(model_class=Entry)
        config.record_timestamps()

        assert config.attributes_to_store == {}

    def test_observed_fields(self):
        assert Article.__search_config__.observed_fields == frozenset(
            ["title", "body", "category", "created_at", "updated_at"]
        )

    def test_missing_accessors(self):
        config = SearchConfig(model_class=Article, searchable_fields=["body", "nope"])
        assert config.missing_accessors() == ["nope"]

    def test_shared_by_subtypes(self):
        assert Notification.__search_config__ is Article.__search_config__
        assert Notification.__search_config__.root_class is Article

    def test_table_name(self):
        assert Article.__search_config__.table_name == "articles"
        assert SearchConfig(model_class=Entry).table_name == "entry"
