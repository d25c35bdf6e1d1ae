"""Shared fixtures: a legacy library database and an in-memory target store."""

import sqlite3

import pytest

from libmigrate.extractors.sqlite_extractor import SQLiteExtractor
from libmigrate.loaders.memory_store import MemoryStore
from libmigrate.models.migration import MigrationConfig
from libmigrate.services.resolver import EntityResolver
from libmigrate.services.schema_prober import SchemaProber

LEGACY_SCHEMA = """
CREATE TABLE Categories (ID INTEGER PRIMARY KEY, Category TEXT, Shelf TEXT);
CREATE TABLE BookDetails (
    BookID INTEGER PRIMARY KEY, Title TEXT, Author TEXT, ISBN TEXT,
    Publisher TEXT, Year INTEGER, Category TEXT, Available TEXT
);
CREATE TABLE MemberDetails (
    MemberID INTEGER PRIMARY KEY, Name TEXT, RollNo TEXT, Email TEXT,
    Dob TEXT, AdmissionYear INTEGER
);
CREATE TABLE IssueDetails (
    IssueID INTEGER PRIMARY KEY, BookID INTEGER, MemberID INTEGER,
    IssueDate TEXT, DueDate TEXT
);
CREATE TABLE SubmittedBooks (
    ID INTEGER PRIMARY KEY, BookID INTEGER, MemberID INTEGER, IssueDate TEXT,
    DueDate TEXT, SubmitDate TEXT, Fine REAL
);
"""

CATEGORIES = [
    (1, "Fiction", "A1"),
    (2, "Science", "B2"),
    (3, "History", "C3"),
]

BOOKS = [
    (101, "Things Fall Apart", "Chinua Achebe", "9780385474542", "Heinemann", 1958, "Fiction", "Yes"),
    (102, "A Brief History of Time", "Stephen Hawking", None, "Bantam", 1988, "2", "No"),
    (103, "The River Between", "Ngugi wa Thiong'o", "", "Heinemann", 1965, "Fiction", "available"),
    (104, "Blossoms of the Savannah", "Henry Ole Kulet", None, "Longhorn", 2008, "Unknown Genre", "1"),
    (105, "Things Fall Apart", "Chinua Achebe", None, "Heinemann", 1958, "Fiction", "Yes"),
]

MEMBERS = [
    (1, "John Kamau", "ADM001", "john@example.com", "05/03/2008", 2023),
    (2, "Mary Wanjiku Otieno", "ADM002", None, "2007-11-20", 2022),
    (3, "Peter", None, None, "not a date", 2019),
    (4, None, "ADM004", None, None, 2024),
]

ISSUES = [
    (1, 101, 1, "01/02/2024", "15/02/2024"),
    (2, 104, 2, "10/01/2025", None),
    (3, 999, 1, "01/02/2024", "15/02/2024"),
    (4, 102, 42, "01/02/2024", "15/02/2024"),
]

SUBMISSIONS = [
    (1, 103, 2, "01/12/2023", "01/01/2024", "11/01/2024", 0),
    (2, 102, 1, "01/03/2024", "15/03/2024", "10/03/2024", 0),
    (3, 103, 1, "01/04/2024", "15/04/2024", "20/04/2024", 250),
]


def build_legacy_db(path, empty_members=False):
    """Write a legacy library database to ``path``."""
    conn = sqlite3.connect(str(path))
    conn.executescript(LEGACY_SCHEMA)
    conn.executemany("INSERT INTO Categories VALUES (?, ?, ?)", CATEGORIES)
    conn.executemany("INSERT INTO BookDetails VALUES (?, ?, ?, ?, ?, ?, ?, ?)", BOOKS)
    if not empty_members:
        conn.executemany("INSERT INTO MemberDetails VALUES (?, ?, ?, ?, ?, ?)", MEMBERS)
    conn.executemany("INSERT INTO IssueDetails VALUES (?, ?, ?, ?, ?)", ISSUES)
    conn.executemany("INSERT INTO SubmittedBooks VALUES (?, ?, ?, ?, ?, ?, ?)", SUBMISSIONS)
    conn.commit()
    conn.close()
    return str(path)


@pytest.fixture
def legacy_db(tmp_path):
    """Path to a populated legacy database."""
    return build_legacy_db(tmp_path / "legacy.db")


@pytest.fixture
def extractor(legacy_db):
    with SQLiteExtractor(legacy_db, batch_size=2) as handle:
        yield handle


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def resolver(store):
    return EntityResolver(store)


@pytest.fixture
def config(legacy_db):
    return MigrationConfig(source_path=legacy_db, batch_size=2)


@pytest.fixture
def sources(extractor):
    """Source tables chosen for each role in the legacy database."""
    prober = SchemaProber()
    result = prober.probe(extractor)
    return prober.select_sources(result.mappings)
