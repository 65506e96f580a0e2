from models import db, Story, Profile, Follow


def test_like_toggles_and_returns_recounted_total(app, make_profile, make_story, client_for, fetch):
    author = make_profile("alice")
    make_profile("bob")
    story = make_story(author)
    with app.app_context():
        db.session.get(Story, story).likes_count = 41
        db.session.commit()
    client = client_for("bob")

    liked = client.post(f"/api/stories/{story}/like")
    unliked = client.post(f"/api/stories/{story}/like")

    assert liked.get_json() == {"liked": True, "likes_count": 1}
    assert unliked.get_json() == {"liked": False, "likes_count": 0}
    assert fetch(Story, story)["likes_count"] == 0


def test_likes_from_several_readers_add_up(make_profile, make_story, client_for):
    author = make_profile("alice")
    make_profile("bob")
    make_profile("carol")
    story = make_story(author)

    client_for("bob").post(f"/api/stories/{story}/like")
    resp = client_for("carol").post(f"/api/stories/{story}/like")

    assert resp.get_json()["likes_count"] == 2


def test_bookmark_toggles_and_shows_on_dashboard(make_profile, make_story, client_for):
    author = make_profile("alice")
    make_profile("bob")
    story = make_story(author, title="Worth Keeping")
    client = client_for("bob")

    resp = client.post(f"/api/stories/{story}/bookmark")

    assert resp.get_json() == {"bookmarked": True, "bookmarks_count": 1}
    assert b"Worth Keeping" in client.get("/dashboard").data
    assert client.post(f"/api/stories/{story}/bookmark").get_json()["bookmarked"] is False


def test_reactions_on_missing_or_draft_story_are_not_found(make_profile, make_story, client_for):
    author = make_profile("alice")
    make_profile("bob")
    draft = make_story(author, status="draft")
    client = client_for("bob")

    assert client.post(f"/api/stories/{draft}/like").status_code == 404
    assert client.post("/api/stories/999/bookmark").status_code == 404


def test_author_may_react_to_own_draft(make_profile, make_story, client_for):
    author = make_profile("alice")
    draft = make_story(author, status="draft")

    resp = client_for("alice").post(f"/api/stories/{draft}/bookmark")

    assert resp.status_code == 200


def test_subscribing_from_a_chapter_targets_the_series(make_profile, make_story, client_for):
    author = make_profile("alice")
    make_profile("bob")
    parent = make_story(author, story_type="series")
    chapter = make_story(author, story_type="series", series_id=parent, chapter_number=2)
    client = client_for("bob")

    first = client.post(f"/api/stories/{chapter}/subscribe")
    second = client.post(f"/api/stories/{parent}/subscribe")

    assert first.get_json() == {"subscribed": True, "story_id": parent, "subscribers_count": 1}
    assert second.get_json() == {"subscribed": False, "story_id": parent, "subscribers_count": 0}


def test_one_time_posts_cannot_be_subscribed_to(make_profile, make_story, client_for):
    author = make_profile("alice")
    make_profile("bob")
    post = make_story(author, story_type="one_time")

    resp = client_for("bob").post(f"/api/stories/{post}/subscribe")

    assert resp.status_code == 400


def test_follow_toggles_and_recounts_both_profiles(app, make_profile, client_for, fetch):
    alice = make_profile("alice")
    bob = make_profile("bob")
    client = client_for("bob")

    followed = client.post(f"/api/profiles/{alice}/follow")

    assert followed.get_json() == {"following": True, "followers_count": 1}
    assert fetch(Profile, alice)["followers_count"] == 1
    assert fetch(Profile, bob)["following_count"] == 1

    unfollowed = client.post(f"/api/profiles/{alice}/follow")

    assert unfollowed.get_json() == {"following": False, "followers_count": 0}
    assert fetch(Profile, bob)["following_count"] == 0
    with app.app_context():
        assert Follow.query.count() == 0


def test_follow_rejects_self_and_unknown_profiles(make_profile, client_for):
    alice = make_profile("alice")
    client = client_for("alice")

    assert client.post(f"/api/profiles/{alice}/follow").status_code == 400
    assert client.post("/api/profiles/999/follow").status_code == 404
