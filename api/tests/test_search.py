"""Document and user search."""

from fastapi.testclient import TestClient
from sqlalchemy.dialects import postgresql
from sqlalchemy.orm import Session

from sharebuddy import models
from sharebuddy.services import search
from sharebuddy.services.search import SearchFilters


def _compile(stmt) -> str:
    return str(stmt.compile(dialect=postgresql.dialect()))


def test_process_terms_strips_punctuation() -> None:
    assert search.process_terms("  calculus, limits!! & ") == ["calculus", "limits"]
    assert search.process_terms(None) == []


def test_full_text_query_uses_tsvector_and_rank() -> None:
    sql = _compile(search.build_document_search("calculus limits", SearchFilters(), full_text=True))
    assert "to_tsvector" in sql
    assert "to_tsquery" in sql
    assert "ts_rank" in sql
    assert "@@" in sql


def test_tag_filter_is_exists_subquery() -> None:
    sql = _compile(search.build_document_search(None, SearchFilters(tags=["math", "exam"]), full_text=True))
    assert "EXISTS" in sql
    assert "JOIN document_tags" not in sql


def test_count_query_shares_filters() -> None:
    filters = SearchFilters(subject="Math", max_cost=5)
    sql = _compile(search.build_count_query("calculus", filters, full_text=True))
    assert "count(documents.id)" in sql
    assert "ts_rank" not in sql
    assert "documents.credit_cost <=" in sql
    assert "documents.status =" in sql


def test_sqlite_search_falls_back_to_ilike(
    client: TestClient, db: Session, make_user, make_document
) -> None:
    author = make_user()
    make_document(author, title="Calculus limits", description="Epsilon delta proofs", subject="Math")
    make_document(author, title="Organic chemistry", description="Reactions and calculus-free", subject="Chem")
    make_document(author, title="Calculus draft", status="pending")

    body = client.get("/api/search/documents", params={"q": "limits"}).json()
    assert body["query"] == "limits"
    assert body["total_items"] == 1
    assert body["items"][0]["document"]["title"] == "Calculus limits"

    # Title matches outrank description matches
    ranked = client.get("/api/search/documents", params={"q": "calculus"}).json()
    assert [r["document"]["title"] for r in ranked["items"]] == ["Calculus limits", "Organic chemistry"]
    assert ranked["items"][0]["relevance"] > ranked["items"][1]["relevance"]


def test_search_filters_by_tag_without_duplicates(db: Session, make_user, make_document) -> None:
    author = make_user()
    document = make_document(author, title="Exam pack")
    document.tags = [models.DocumentTag(tag_name="math"), models.DocumentTag(tag_name="math-exam")]
    make_document(author, title="Unrelated")
    db.commit()

    rows, total = search.search_documents(db, None, SearchFilters(tags=["math"]))
    assert total == 1
    assert [doc.title for doc, _ in rows] == ["Exam pack"]


def test_suggestions_and_popular_subjects(client: TestClient, make_user, make_document) -> None:
    author = make_user()
    make_document(author, title="Physics 101", subject="Physics")
    make_document(author, title="Physics 102", subject="Physics")
    make_document(author, title="Biology", subject="Biology")

    suggestions = client.get("/api/search/suggestions", params={"q": "phys"}).json()
    assert {s["title"] for s in suggestions} == {"Physics 101", "Physics 102"}

    popular = client.get("/api/search/popular").json()
    assert popular[0] == {"term": "Physics", "count": 2}


def test_search_users(client: TestClient, make_user) -> None:
    make_user("minh", university="HCMUS")
    make_user("lan", university="HCMUS")
    make_user("ghost", university="HCMUS", is_active=False)

    body = client.get("/api/search/users", params={"q": "hcmus"}).json()
    assert body["total_items"] == 2
    assert {row["user"]["username"] for row in body["items"]} == {"minh", "lan"}
