"""
Tests, likes, follows and the read-only user/post listings.

Tests come from two collections: "userTests" (written through the API,
newest first) and "tests" (static seed data). Reads merge them with user
tests first; a like is written back only to the collection holding the test.
"""
import logging
import time
import uuid
from typing import Dict, List, Optional, Tuple

from auth_service import find_user, load_users, save_users, to_user_response
from database import JsonStore
from errors import InvalidOperation, NotFound, ValidationError
from schemas import Comment, Post, Test, User, now_iso, parse_documents

logger = logging.getLogger(__name__)

USER_TESTS = "userTests"
STATIC_TESTS = "tests"


# -------------------- Tests --------------------

def _load_tests(store: JsonStore, collection: str) -> List[Test]:
    return parse_documents(Test, store.load(collection), collection)


def list_user_tests(store: JsonStore) -> List[Dict]:
    return [t.to_document() for t in _load_tests(store, USER_TESTS)]


def list_tests(store: JsonStore) -> List[Dict]:
    tests = _load_tests(store, USER_TESTS) + _load_tests(store, STATIC_TESTS)
    return [t.to_document() for t in tests]


def get_test(store: JsonStore, test_id: str) -> Dict:
    for collection in (USER_TESTS, STATIC_TESTS):
        for test in _load_tests(store, collection):
            if test.id == test_id:
                return test.to_document()
    raise NotFound("Test not found")


def create_user_test(store: JsonStore, data: Dict, owner: Optional[User] = None) -> Dict:
    data = dict(data)
    if not data.get("id"):
        data["id"] = f"test_{int(time.time() * 1000)}_{uuid.uuid4().hex[:7]}"
    if owner is not None and not data.get("ownerId"):
        data["ownerId"] = owner.id
    try:
        test = Test.model_validate(data)
    except ValueError as e:
        raise ValidationError(f"Invalid test: {e}") from e

    if store.get_document(USER_TESTS, test.id) is not None:
        raise ValidationError("A test with this id already exists")
    store.create_document(USER_TESTS, test.to_document(), prepend=True)
    logger.info("Test saved successfully: %s", test.id)
    return test.to_document()


def delete_user_test(store: JsonStore, test_id: str) -> None:
    tests = _load_tests(store, USER_TESTS)
    remaining = [t for t in tests if t.id != test_id]
    if len(remaining) == len(tests):
        raise NotFound("Test not found")
    store.save(USER_TESTS, [t.to_document() for t in remaining])
    logger.info("Test deleted successfully: %s", test_id)


def toggle_test_like(store: JsonStore, test_id: str, user_id: Optional[str]) -> Dict:
    if not user_id:
        raise ValidationError("User ID is required")
    for collection in (USER_TESTS, STATIC_TESTS):
        tests = _load_tests(store, collection)
        test = next((t for t in tests if t.id == test_id), None)
        if test is None:
            continue
        if user_id in test.likes:
            test.likes.remove(user_id)
        else:
            test.likes.append(user_id)
        store.save(collection, [t.to_document() for t in tests])
        return {"testId": test.id, "likes": list(test.likes), "liked": user_id in test.likes}
    raise NotFound("Test not found")


# -------------------- Follows --------------------

def _follow_pair(store: JsonStore, current_user_id: str, target_user_id: str) -> Tuple[List[User], User, User]:
    if current_user_id == target_user_id:
        raise InvalidOperation("You cannot follow yourself")
    users = load_users(store)
    current = find_user(users, current_user_id)
    target = find_user(users, target_user_id)
    if current is None or target is None:
        raise NotFound("User not found")
    return users, current, target


def follow_user(store: JsonStore, current_user_id: str, target_user_id: str) -> Dict:
    users, current, target = _follow_pair(store, current_user_id, target_user_id)
    if target.id not in current.following:
        current.following.append(target.id)
    if current.id not in target.followers:
        target.followers.append(current.id)
    current.updated_at = target.updated_at = now_iso()
    save_users(store, users)
    return {"message": "User followed", "user": to_user_response(current), "target": to_user_response(target)}


def unfollow_user(store: JsonStore, current_user_id: str, target_user_id: str) -> Dict:
    users, current, target = _follow_pair(store, current_user_id, target_user_id)
    current.following = [uid for uid in current.following if uid != target.id]
    target.followers = [uid for uid in target.followers if uid != current.id]
    current.updated_at = target.updated_at = now_iso()
    save_users(store, users)
    return {"message": "User unfollowed", "user": to_user_response(current), "target": to_user_response(target)}


# -------------------- Users & posts --------------------

def list_users(store: JsonStore) -> List[Dict]:
    return [to_user_response(u) for u in load_users(store)]


def get_user(store: JsonStore, user_id: str) -> Dict:
    user = find_user(load_users(store), user_id)
    if user is None:
        raise NotFound("User not found")
    return to_user_response(user)


def _related_users(store: JsonStore, user_id: str, relation: str) -> List[Dict]:
    users = load_users(store)
    user = find_user(users, user_id)
    if user is None:
        raise NotFound("User not found")
    by_id = {u.id: u for u in users}
    return [to_user_response(by_id[uid]) for uid in getattr(user, relation) if uid in by_id]


def list_followers(store: JsonStore, user_id: str) -> List[Dict]:
    return _related_users(store, user_id, "followers")


def list_following(store: JsonStore, user_id: str) -> List[Dict]:
    return _related_users(store, user_id, "following")


def list_posts(store: JsonStore) -> List[Dict]:
    return [p.to_document() for p in parse_documents(Post, store.load("posts"), "posts")]


def list_post_comments(store: JsonStore, post_id: Optional[str] = None) -> List[Dict]:
    filter_dict = {"postId": post_id} if post_id is not None else None
    comments = parse_documents(Comment, store.get_documents("comments", filter_dict), "comments")
    return [c.to_document() for c in comments]
