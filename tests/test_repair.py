from giftcraft.schemas.project import MediaMode, Project, ProjectData, ScreenData, VideoData
from giftcraft.services.repair import repair_project


def _project(screens, videos=()):
    return Project(
        id="project_1_abc",
        name="Gift",
        template_id="romantic",
        schema_version=2,
        data=ProjectData(screens=screens, videos=list(videos)),
    )


def test_dangling_video_is_forced_to_classic_and_images_cleared():
    project = _project({"s1": ScreenData(media_mode=MediaMode.VIDEO, video_id="v1", images=["img1"])})

    repaired = repair_project(project)

    screen = repaired.data.screens["s1"]
    assert screen.media_mode == MediaMode.CLASSIC
    assert screen.video_id is None
    assert screen.images == []


def test_video_mode_without_video_id_is_forced_to_classic():
    project = _project({"s1": ScreenData(media_mode=MediaMode.VIDEO, images=["img1"])})

    screen = repair_project(project).data.screens["s1"]

    assert screen.media_mode == MediaMode.CLASSIC
    assert screen.images == []


def test_classic_screen_keeps_images():
    project = _project({"s1": ScreenData(media_mode=MediaMode.CLASSIC, images=["img1", "img2"])})

    repaired = repair_project(project)

    assert repaired.data.screens["s1"].images == ["img1", "img2"]
    assert repaired is project


def test_classic_screen_drops_stale_video_id_but_keeps_images():
    project = _project(
        {
            "s1": ScreenData(
                media_mode=MediaMode.CLASSIC,
                video_id="v1",
                images=["img1"],
                audio_id="a1",
                gallery_layout="carousel",
            )
        },
        videos=[VideoData(id="v1")],
    )

    screen = repair_project(project).data.screens["s1"]

    assert screen.video_id is None
    assert screen.images == ["img1"]
    assert screen.audio_id == "a1"
    assert screen.gallery_layout == "carousel"


def test_valid_video_screen_clears_classic_only_fields():
    project = _project(
        {
            "s1": ScreenData(
                media_mode=MediaMode.VIDEO,
                video_id="v1",
                audio_id="a1",
                extend_music_to_next=True,
                gallery_layout="timeline",
            )
        },
        videos=[VideoData(id="v1")],
    )

    screen = repair_project(project).data.screens["s1"]

    assert screen.media_mode == MediaMode.VIDEO
    assert screen.video_id == "v1"
    assert screen.audio_id is None
    assert screen.extend_music_to_next is None
    assert screen.gallery_layout is None


def test_repair_does_not_mutate_input_and_is_idempotent():
    project = _project(
        {
            "s1": ScreenData(media_mode=MediaMode.VIDEO, video_id="gone", images=["img1"]),
            "s2": ScreenData(images=["img2"]),
        }
    )

    once = repair_project(project)
    twice = repair_project(once)

    assert project.data.screens["s1"].media_mode == MediaMode.VIDEO
    assert project.data.screens["s1"].images == ["img1"]
    assert twice == once
    assert once.data.screens["s2"] is project.data.screens["s2"]


def test_repair_handles_screens_loaded_from_sparse_json():
    project = Project.model_validate(
        {
            "id": "project_1_abc",
            "name": "Gift",
            "templateId": "romantic",
            "data": {"screens": {"intro": {}, "clip": {"mediaMode": "video", "videoId": "v9"}}},
        }
    )

    repaired = repair_project(project)

    assert repaired.data.screens["intro"].media_mode == MediaMode.CLASSIC
    assert repaired.data.screens["clip"].media_mode == MediaMode.CLASSIC
    assert repaired.data.screens["clip"].video_id is None
