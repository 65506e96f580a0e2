from datetime import datetime

import pytest
from sqlalchemy.exc import SQLAlchemyError

import helpers
from models import db, Story, Profile, Like, Bookmark, Subscription, Comment, Notification


def publish(client, **form):
    form.setdefault("action", "publish")
    return client.post("/write", data={name: str(value) for name, value in form.items()})


def only_story(app, **criteria):
    with app.app_context():
        story = Story.query.filter_by(**criteria).one()
        return story.to_dict()


def test_publishing_a_one_time_post(app, make_profile, client_for, fetch):
    author = make_profile("alice")
    client = client_for("alice")

    resp = publish(client, title="Rain", content="x" * 300, story_type="one_time", tags="sad, rain, sad")

    story = only_story(app, title="Rain")
    assert resp.headers["Location"].endswith(f"/story/{story['id']}")
    assert story["status"] == "published"
    assert story["chapter_number"] == 1
    assert story["series_id"] is None
    assert story["published_at"] is not None
    assert story["excerpt"] == "x" * 200
    assert story["tags"] == ["sad", "rain"]
    assert fetch(Profile, author)["stories_count"] == 1


def test_saving_a_draft(app, make_profile, client_for, fetch):
    author = make_profile("alice")
    client = client_for("alice")

    resp = publish(client, action="draft", title="", content="")

    story = only_story(app, author_id=author)
    assert story["title"] == "Untitled Draft"
    assert story["status"] == "draft"
    assert story["published_at"] is None
    assert fetch(Profile, author)["stories_count"] == 0
    assert b"Draft saved." in client.get(resp.headers["Location"]).data


def test_publishing_requires_title_and_content(app, make_profile, client_for):
    make_profile("alice")
    client = client_for("alice")

    no_title = client.post("/write", data={"action": "publish", "title": "  ", "content": "words"},
                           follow_redirects=True)
    no_content = client.post("/write", data={"action": "publish", "title": "Title", "content": "  "},
                             follow_redirects=True)

    assert b"Title is required." in no_title.data
    assert b"Content is required." in no_content.data
    with app.app_context():
        assert Story.query.count() == 0


def test_tags_are_capped(app, make_profile, client_for):
    make_profile("alice")
    client = client_for("alice")

    publish(client, title="Tagged", content="text", tags="a,b,c,d,e,f,g")

    assert only_story(app, title="Tagged")["tags"] == ["a", "b", "c", "d", "e"]


def test_new_chapters_take_the_next_number_and_inherit_type(app, make_profile, make_story, client_for):
    author = make_profile("alice")
    parent = make_story(author, story_type="novel", title="Saga")
    client = client_for("alice")

    publish(client, series_id=parent, title="Second", content="two", story_type="one_time")
    publish(client, series_id=parent, title="Third", content="three")

    second = only_story(app, title="Second")
    third = only_story(app, title="Third")
    assert (second["series_id"], second["chapter_number"], second["story_type"]) == (parent, 2, "novel")
    assert (third["series_id"], third["chapter_number"]) == (parent, 3)


def test_editor_prefills_next_chapter(make_profile, make_story, client_for):
    author = make_profile("alice")
    parent = make_story(author, story_type="series", title="Saga")
    make_story(author, story_type="series", series_id=parent, chapter_number=2)
    client = client_for("alice")

    resp = client.get(f"/write?seriesId={parent}&newChapter=true")

    assert resp.status_code == 200
    assert b"Chapter 3" in resp.data


def test_chapter_cannot_be_added_to_someone_elses_series(app, make_profile, make_story, client_for):
    owner = make_profile("alice")
    make_profile("bob")
    parent = make_story(owner, story_type="series")
    client = client_for("bob")

    resp = publish(client, series_id=parent, title="Hijack", content="text")

    assert resp.headers["Location"].endswith("/dashboard")
    with app.app_context():
        assert Story.query.filter_by(title="Hijack").count() == 0


def test_chapter_cannot_be_added_to_a_one_time_post(app, make_profile, make_story, client_for):
    author = make_profile("alice")
    post = make_story(author, story_type="one_time")
    client = client_for("alice")

    publish(client, series_id=post, title="Sequel", content="text")

    with app.app_context():
        assert Story.query.filter_by(title="Sequel").count() == 0


def test_editing_keeps_series_placement_and_first_publish_date(app, make_profile, make_story, client_for, fetch):
    author = make_profile("alice")
    first_published = datetime(2023, 5, 1)
    parent = make_story(author, story_type="series")
    chapter = make_story(author, story_type="series", series_id=parent, chapter_number=2,
                         published_at=first_published)
    client = client_for("alice")

    resp = publish(client, story_id=chapter, title="Renamed", content="new text")

    row = fetch(Story, chapter)
    assert b"Story Updated!" in client.get(resp.headers["Location"]).data
    assert row["title"] == "Renamed"
    assert row["series_id"] == parent
    assert row["chapter_number"] == 2
    assert row["published_at"] == first_published


def test_only_the_author_can_edit(make_profile, make_story, client_for, fetch):
    author = make_profile("alice")
    make_profile("bob")
    story = make_story(author, title="Mine")
    client = client_for("bob")

    resp = publish(client, story_id=story, title="Yours", content="text")

    assert resp.headers["Location"].endswith("/dashboard")
    assert fetch(Story, story)["title"] == "Mine"


def test_series_with_chapters_cannot_become_one_time(make_profile, make_story, client_for, fetch):
    author = make_profile("alice")
    parent = make_story(author, story_type="series", title="Saga")
    make_story(author, story_type="series", series_id=parent, chapter_number=2)
    client = client_for("alice")

    resp = publish(client, story_id=parent, title="Saga", content="text", story_type="one_time")

    assert b"cannot become a one-time post" in client.get(resp.headers["Location"]).data
    assert fetch(Story, parent)["story_type"] == "series"


def test_publishing_a_chapter_notifies_subscribers(app, make_profile, make_story, client_for):
    author = make_profile("alice")
    reader = make_profile("bob")
    parent = make_story(author, story_type="series", title="Saga")
    with app.app_context():
        db.session.add(Subscription(user_id=reader, story_id=parent))
        db.session.commit()
    client = client_for("alice")

    publish(client, series_id=parent, title="Next part", content="text")
    publish(client, series_id=parent, title="Unfinished", content="", action="draft")

    with app.app_context():
        notes = Notification.query.filter_by(user_id=reader).all()
        assert len(notes) == 1
        assert "Next part" in notes[0].message
        assert Notification.query.filter_by(user_id=author).count() == 0


def test_deleting_a_parent_removes_its_chapters_and_their_rows(app, make_profile, make_story, client_for, fetch):
    author = make_profile("alice")
    reader = make_profile("bob")
    parent = make_story(author, story_type="series")
    chapter = make_story(author, story_type="series", series_id=parent, chapter_number=2)
    other = make_story(author)
    with app.app_context():
        db.session.add_all([
            Like(user_id=reader, story_id=chapter),
            Bookmark(user_id=reader, story_id=parent),
            Subscription(user_id=reader, story_id=parent),
            Comment(story_id=chapter, author_id=reader, content="Lovely"),
            Like(user_id=reader, story_id=other),
        ])
        db.session.commit()
        author_row = db.session.get(Profile, author)
        author_row.stories_count = 3
        db.session.commit()
    client = client_for("alice")

    resp = client.delete(f"/api/stories/{parent}")

    assert resp.status_code == 200
    assert resp.get_json() == {"deleted": True, "ids": [parent, chapter]}
    assert fetch(Story, parent) is None
    assert fetch(Story, chapter) is None
    assert fetch(Profile, author)["stories_count"] == 1
    with app.app_context():
        assert Like.query.filter_by(story_id=chapter).count() == 0
        assert Bookmark.query.count() == 0
        assert Subscription.query.count() == 0
        assert Comment.query.count() == 0
        assert Like.query.filter_by(story_id=other).count() == 1


def test_deleting_a_chapter_leaves_the_series(make_profile, make_story, client_for, fetch):
    author = make_profile("alice")
    parent = make_story(author, story_type="series")
    chapter = make_story(author, story_type="series", series_id=parent, chapter_number=2)
    client = client_for("alice")

    resp = client.delete(f"/api/stories/{chapter}")

    assert resp.get_json()["ids"] == [chapter]
    assert fetch(Story, parent) is not None


def test_only_the_author_can_delete(make_profile, make_story, client_for, fetch):
    author = make_profile("alice")
    make_profile("bob")
    story = make_story(author)

    resp = client_for("bob").delete(f"/api/stories/{story}")
    missing = client_for("bob").delete("/api/stories/999")

    assert resp.status_code == 403
    assert missing.status_code == 404
    assert fetch(Story, story) is not None


@pytest.fixture
def pushes(monkeypatch):
    sent = []
    monkeypatch.setattr(helpers.socketio, "emit",
                        lambda event, payload, to=None, **kwargs: sent.append((event, to, payload)))
    return sent


def test_chapter_notification_is_pushed_once_stored(app, make_profile, make_story, client_for, pushes):
    author = make_profile("alice")
    reader = make_profile("bob")
    parent = make_story(author, story_type="series", title="Saga")
    with app.app_context():
        db.session.add(Subscription(user_id=reader, story_id=parent))
        db.session.commit()

    publish(client_for("alice"), series_id=parent, title="Next part", content="text")

    assert [(event, to) for event, to, _ in pushes] == [("notification", str(reader))]
    assert "Next part" in pushes[0][2]["message"]


def test_failed_chapter_save_pushes_nothing(app, make_profile, make_story, client_for, pushes, monkeypatch):
    author = make_profile("alice")
    reader = make_profile("bob")
    parent = make_story(author, story_type="series", title="Saga")
    with app.app_context():
        db.session.add(Subscription(user_id=reader, story_id=parent))
        db.session.commit()
    client = client_for("alice")

    def broken_recount(profile):
        raise SQLAlchemyError("database is locked")

    monkeypatch.setattr("api.story.refresh_profile_counts", broken_recount)
    resp = publish(client, series_id=parent, title="Lost part", content="text")

    assert b"Failed to publish story." in client.get(resp.headers["Location"]).data
    assert pushes == []
    with app.app_context():
        assert Notification.query.count() == 0
        assert Story.query.filter_by(title="Lost part").count() == 0
