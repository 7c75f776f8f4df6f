"""
Nested comments on tests

The "testComments" collection is a forest: root comments with replies
nested inside them to any depth. CommentForest loads it once and indexes
every node by id, keeping the list that holds the node so replies can be
appended and subtrees cut out without walking the tree again.

When an id occurs more than once, the index points at its first
occurrence in depth-first order (a node before its replies, replies before
later siblings).
"""
import logging
import time
from typing import Dict, Iterator, List, NamedTuple, Optional, Tuple

from database import JsonStore
from errors import NotFound, ValidationError
from schemas import TestComment, now_iso, parse_documents

logger = logging.getLogger(__name__)

COLLECTION = "testComments"


class Slot(NamedTuple):
    node: TestComment
    container: List[TestComment]
    parent_id: Optional[str]


class CommentForest:
    def __init__(self, roots: List[TestComment]):
        self.roots = roots
        self._index: Dict[str, Slot] = {}
        self._reindex()

    @classmethod
    def from_documents(cls, documents: List[dict]) -> "CommentForest":
        return cls(parse_documents(TestComment, documents, COLLECTION))

    def to_documents(self) -> List[dict]:
        return [c.to_document() for c in self.roots]

    def _walk(self) -> Iterator[Slot]:
        stack: List[Slot] = [Slot(c, self.roots, None) for c in reversed(self.roots)]
        while stack:
            slot = stack.pop()
            yield slot
            node = slot.node
            stack.extend(Slot(r, node.replies, node.id) for r in reversed(node.replies))

    def _reindex(self) -> None:
        self._index.clear()
        for slot in self._walk():
            self._index.setdefault(slot.node.id, slot)

    def __contains__(self, comment_id: str) -> bool:
        return comment_id in self._index

    def __len__(self) -> int:
        return sum(1 for _ in self._walk())

    def _slot(self, comment_id: str) -> Slot:
        try:
            return self._index[comment_id]
        except KeyError:
            raise NotFound("Comment not found") from None

    def find(self, comment_id: str) -> TestComment:
        return self._slot(comment_id).node

    def parent_of(self, comment_id: str) -> Optional[str]:
        return self._slot(comment_id).parent_id

    def _new_id(self) -> str:
        stamp = int(time.time() * 1000)
        while f"tc{stamp}" in self._index:
            stamp += 1
        return f"tc{stamp}"

    def add(self, test_id: str, author_id: str, body: str, parent_id: Optional[str] = None) -> TestComment:
        if parent_id:
            if parent_id not in self._index:
                raise NotFound("Parent comment not found")
            parent = self._index[parent_id].node
            container = parent.replies
        else:
            container = self.roots
        comment = TestComment(
            id=self._new_id(),
            test_id=test_id,
            author_id=author_id,
            body=body,
            created_at=now_iso(),
            likes=[],
            parent_id=parent_id or None,
            replies=[],
        )
        container.append(comment)
        self._index[comment.id] = Slot(comment, container, comment.parent_id)
        return comment

    def edit(self, comment_id: str, body: str) -> TestComment:
        comment = self.find(comment_id)
        comment.body = body
        comment.updated_at = now_iso()
        return comment

    def delete(self, comment_id: str) -> TestComment:
        """Cut the comment out of its list; its replies go with it."""
        slot = self._slot(comment_id)
        position = next(i for i, c in enumerate(slot.container) if c is slot.node)
        del slot.container[position]
        # a shadowed duplicate of a removed id may now be the first match
        self._reindex()
        return slot.node

    def toggle_like(self, comment_id: str, user_id: str) -> TestComment:
        comment = self.find(comment_id)
        if user_id in comment.likes:
            comment.likes.remove(user_id)
        else:
            comment.likes.append(user_id)
        return comment

    def list_by_test(self, test_id: str) -> List[TestComment]:
        return [c for c in self.roots if c.test_id == test_id]


def load_forest(store: JsonStore) -> Tuple[CommentForest, Optional[str]]:
    documents, version = store.load_versioned(COLLECTION)
    return CommentForest.from_documents(documents), version


def save_forest(store: JsonStore, forest: CommentForest, version: Optional[str] = None) -> None:
    store.save(COLLECTION, forest.to_documents(), expected_version=version)


def list_comments(store: JsonStore, test_id: str) -> List[dict]:
    forest, _ = load_forest(store)
    return [c.to_document() for c in forest.list_by_test(test_id)]


def add_comment(store: JsonStore, test_id: str, author_id: Optional[str], body: Optional[str],
                parent_id: Optional[str] = None) -> dict:
    if not author_id or not body:
        raise ValidationError("Author ID and body are required")
    forest, version = load_forest(store)
    comment = forest.add(test_id, author_id, body, parent_id)
    save_forest(store, forest, version)
    logger.info("Comment %s added to test %s (parent=%s)", comment.id, test_id, parent_id)
    return comment.to_document()


def edit_comment(store: JsonStore, comment_id: str, body: Optional[str]) -> dict:
    if not body:
        raise ValidationError("Body is required")
    forest, version = load_forest(store)
    comment = forest.edit(comment_id, body)
    save_forest(store, forest, version)
    return comment.to_document()


def delete_comment(store: JsonStore, comment_id: str) -> None:
    forest, version = load_forest(store)
    removed = forest.delete(comment_id)
    save_forest(store, forest, version)
    logger.info("Comment %s deleted along with %d direct replies", comment_id, len(removed.replies))


def toggle_comment_like(store: JsonStore, comment_id: str, user_id: Optional[str]) -> dict:
    if not user_id:
        raise ValidationError("User ID is required")
    forest, version = load_forest(store)
    comment = forest.toggle_like(comment_id, user_id)
    save_forest(store, forest, version)
    return comment.to_document()
