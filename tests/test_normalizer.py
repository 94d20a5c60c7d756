from data_collection.normalizer import (
    PLAY_COUNT,
    normalize_content_post,
    normalize_content_posts,
    normalize_creator,
    normalize_creators,
    seed_follower_count,
)
from data_collection.utils import parse_abbreviated_count


def test_abbreviated_counts():
    assert parse_abbreviated_count("35.7k followers") == 35700
    assert parse_abbreviated_count("1.2M") == 1200000
    assert parse_abbreviated_count("1,204 followers") == 1204
    assert parse_abbreviated_count("followers") is None


def test_creator_follower_label_is_parsed():
    creator = normalize_creator({"username": "alice", "followersText": "35.7k followers"})

    assert creator is not None
    assert creator.follower_count == 35700


def test_creator_follower_count_found_in_free_text_field():
    creator = normalize_creator({"username": "bob", "headline": "1.2M followers"})

    assert creator.follower_count == 1200000


def test_bio_and_caption_are_not_read_as_follower_counts():
    boastful = normalize_creator({"username": "dan", "biography": "10k followers love this", "caption": "thanks 5k followers"})
    labelled = normalize_creator({"username": "eve", "bio": "1M followers soon", "subtitle": "2,500 followers"})

    assert boastful.follower_count == 0
    assert labelled.follower_count == 2500


def test_numeric_follower_count_wins_over_label():
    creator = normalize_creator(
        {"username": "carol", "followersCount": 812, "followersText": "35.7k followers"}
    )

    assert creator.follower_count == 812


def test_email_only_from_public_email_field():
    with_email = normalize_creator({"username": "dana", "publicEmail": " dana@brand.io "})
    bio_only = normalize_creator({"username": "erin", "biography": "collabs: erin@brand.io"})

    assert with_email.email == "dana@brand.io"
    assert bio_only.email is None


def test_camel_case_preferred_over_snake_case():
    creator = normalize_creator(
        {"username": "frank", "fullName": "Frank New", "full_name": "Frank Old"}
    )

    assert creator.full_name == "Frank New"


def test_creator_without_username_is_dropped():
    assert normalize_creator({"fullName": "No Handle"}) is None
    assert normalize_creator("not a record") is None
    assert len(normalize_creators([{"username": "ok"}, {"username": ""}, None])) == 1


def test_play_count_takes_precedence_over_view_count():
    post = normalize_content_post(
        {"shortCode": "ABC", "videoPlayCount": 900, "videoViewCount": 400}
    )

    assert post.play_count == 900
    assert post.reach == 900


def test_zero_is_a_present_value():
    assert PLAY_COUNT({"videoPlayCount": 0, "playCount": 10}) == 0
    assert PLAY_COUNT({"videoPlayCount": None, "playCount": 10}) == 10


def test_post_without_short_code_or_url_is_dropped():
    assert normalize_content_post({"caption": "hello"}) is None
    assert normalize_content_posts([{"shortCode": "A1"}, {"likesCount": 3}]) == [
        normalize_content_post({"shortCode": "A1"})
    ]


def test_post_url_falls_back_to_short_code():
    post = normalize_content_post({"shortCode": "XyZ"})

    assert post.url == "https://www.instagram.com/reel/XyZ/"


def test_hashtags_parsed_from_caption_in_order():
    post = normalize_content_post(
        {"shortCode": "H1", "caption": "new drop #summer #sale and #summer again"}
    )

    assert post.hashtags == ["summer", "sale"]


def test_seed_follower_count_flat_and_nested():
    assert seed_follower_count([{"ownerFollowerCount": 5400}]) == 5400
    assert seed_follower_count([{"owner": {"followersCount": 77}}]) == 77
    assert seed_follower_count([]) is None
