from datetime import date

import pytest

from app.core.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from app.models.address import Address
from app.models.enums import Gender, MaritalStatus
from app.models.family_member import FamilyMember
from app.models.member_achievement import MemberAchievement
from app.models.notification import Notification
from app.services import member_service


@pytest.fixture
def admin(make_user):
    return make_user(name="Admin")


@pytest.fixture
def family(admin, make_family):
    return make_family(admin)


def _reload(db, member):
    db.expire_all()
    return db.query(FamilyMember).filter(FamilyMember.id == member.id).first()


# --------------------------------------------------
# PARENT RULES
# --------------------------------------------------
def test_mother_is_filled_in_from_married_father(db, admin, family, married_pair):
    father, mother = married_pair(family)

    child = member_service.create_member(
        db, "1234", admin.id,
        {"name": "Child C", "gender": Gender.MALE, "generation": 2, "father_id": father.id},
    )

    assert child.father_id == father.id
    assert child.mother_id == mother.id


def test_father_is_filled_in_from_married_mother(db, admin, family, married_pair):
    father, mother = married_pair(family)

    child = member_service.create_member(
        db, family.id, admin.id,
        {"name": "Child D", "gender": Gender.FEMALE, "generation": 2, "mother_id": mother.id},
    )

    assert child.father_id == father.id
    assert child.mother_id == mother.id


def test_derived_parent_skipped_when_spouse_generation_differs(db, admin, family, make_member):
    father = make_member(family, "Father", Gender.MALE, 1)
    young_wife = make_member(family, "Wife", Gender.FEMALE, 2)
    father.spouse_id, young_wife.spouse_id = young_wife.id, father.id
    db.commit()

    child = member_service.create_member(
        db, family.id, admin.id,
        {"name": "Child", "gender": Gender.MALE, "generation": 2, "father_id": father.id},
    )

    assert child.father_id == father.id
    assert child.mother_id is None


def test_father_cannot_be_female(db, admin, family, make_member):
    woman = make_member(family, "Woman", Gender.FEMALE, 1)

    with pytest.raises(ValidationError, match="Father cannot be female"):
        member_service.create_member(
            db, family.id, admin.id,
            {"name": "Kid", "gender": Gender.MALE, "generation": 2, "father_id": woman.id},
        )


def test_mother_cannot_be_male(db, admin, family, make_member):
    man = make_member(family, "Man", Gender.MALE, 1)

    with pytest.raises(ValidationError, match="Mother cannot be male"):
        member_service.create_member(
            db, family.id, admin.id,
            {"name": "Kid", "gender": Gender.MALE, "generation": 2, "mother_id": man.id},
        )


def test_parent_must_be_an_older_generation(db, admin, family, make_member):
    father = make_member(family, "Father", Gender.MALE, 2)

    with pytest.raises(ValidationError, match="generation"):
        member_service.create_member(
            db, family.id, admin.id,
            {"name": "Kid", "gender": Gender.MALE, "generation": 2, "father_id": father.id},
        )


def test_parents_must_share_a_generation(db, admin, family, make_member):
    father = make_member(family, "Father", Gender.MALE, 1)
    mother = make_member(family, "Mother", Gender.FEMALE, 2)

    with pytest.raises(ValidationError, match="same generation"):
        member_service.create_member(
            db, family.id, admin.id,
            {
                "name": "Kid",
                "gender": Gender.MALE,
                "generation": 3,
                "father_id": father.id,
                "mother_id": mother.id,
            },
        )


def test_swapped_parent_slots_are_put_right(db, admin, family, make_member):
    father = make_member(family, "Father", Gender.MALE, 1)
    mother = make_member(family, "Mother", Gender.FEMALE, 1)

    child = member_service.create_member(
        db, family.id, admin.id,
        {
            "name": "Kid",
            "gender": Gender.FEMALE,
            "generation": 2,
            "father_id": mother.id,
            "mother_id": father.id,
        },
    )

    assert child.father_id == father.id
    assert child.mother_id == mother.id


def test_unknown_parent_is_not_found(db, admin, family):
    with pytest.raises(NotFoundError):
        member_service.create_member(
            db, family.id, admin.id,
            {"name": "Kid", "gender": Gender.MALE, "generation": 2, "father_id": "missing"},
        )


def test_only_admin_creates_members(db, family, make_user):
    outsider = make_user(name="Outsider")

    with pytest.raises(ForbiddenError):
        member_service.create_member(
            db, family.id, outsider.id, {"name": "Kid", "gender": Gender.MALE, "generation": 1}
        )


def test_generation_change_checked_against_children(db, admin, family, make_member):
    father = make_member(family, "Father", Gender.MALE, 1)
    make_member(family, "Kid", Gender.MALE, 2, father_id=father.id)

    with pytest.raises(ValidationError):
        member_service.update_member(db, family.id, father.id, admin.id, {"generation": 2})

    with pytest.raises(ValidationError, match="Father cannot be female"):
        member_service.update_member(db, family.id, father.id, admin.id, {"gender": Gender.FEMALE})


# --------------------------------------------------
# SPOUSE SYMMETRY
# --------------------------------------------------
def test_spouse_link_is_symmetric_on_create(db, admin, family, make_member):
    wife = make_member(family, "Wife", Gender.FEMALE, 1)

    husband = member_service.create_member(
        db, family.id, admin.id,
        {"name": "Husband", "gender": Gender.MALE, "generation": 1, "spouse_id": wife.id},
    )
    wife = _reload(db, wife)

    assert husband.spouse_id == wife.id
    assert wife.spouse_id == husband.id
    assert husband.marital_status == MaritalStatus.MARRIED
    assert wife.marital_status == MaritalStatus.MARRIED


def test_same_gender_spouse_rejected(db, admin, family, make_member):
    man = make_member(family, "Man", Gender.MALE, 1)

    with pytest.raises(ValidationError, match="different gender"):
        member_service.create_member(
            db, family.id, admin.id,
            {"name": "Other Man", "gender": Gender.MALE, "generation": 1, "spouse_id": man.id},
        )


def test_other_gender_may_marry_anyone(db, admin, family, make_member):
    man = make_member(family, "Man", Gender.MALE, 1)

    partner = member_service.create_member(
        db, family.id, admin.id,
        {"name": "Partner", "gender": Gender.OTHER, "generation": 1, "spouse_id": man.id},
    )

    assert _reload(db, man).spouse_id == partner.id


def test_already_married_spouse_rejected(db, admin, family, married_pair):
    _, mother = married_pair(family)

    with pytest.raises(ValidationError, match="already married"):
        member_service.create_member(
            db, family.id, admin.id,
            {"name": "Rival", "gender": Gender.MALE, "generation": 1, "spouse_id": mother.id},
        )


def test_member_cannot_marry_themselves(db, admin, family, make_member):
    loner = make_member(family, "Loner", Gender.OTHER)

    with pytest.raises(ValidationError, match="Cannot set spouse to yourself"):
        member_service.update_member(db, family.id, loner.id, admin.id, {"spouse_id": loner.id})

    assert _reload(db, loner).spouse_id is None


def test_changing_spouse_releases_the_old_one(db, admin, family, married_pair, make_member):
    father, mother = married_pair(family)
    new_wife = make_member(family, "New Wife", Gender.FEMALE, 1)

    member_service.update_member(db, family.id, father.id, admin.id, {"spouse_id": new_wife.id})

    father, mother, new_wife = (_reload(db, m) for m in (father, mother, new_wife))
    assert father.spouse_id == new_wife.id
    assert new_wife.spouse_id == father.id
    assert mother.spouse_id is None
    assert mother.marital_status == MaritalStatus.SINGLE


def test_clearing_spouse_clears_both_sides(db, admin, family, married_pair):
    father, mother = married_pair(family)

    member_service.update_member(db, family.id, father.id, admin.id, {"spouse_id": None})

    assert _reload(db, father).spouse_id is None
    assert _reload(db, mother).spouse_id is None


def test_gender_change_cannot_break_marriage(db, admin, family, married_pair):
    father, _ = married_pair(family)

    with pytest.raises(ValidationError, match="different gender"):
        member_service.update_member(db, family.id, father.id, admin.id, {"gender": Gender.FEMALE})


# --------------------------------------------------
# SOFT DELETE / RESTORE
# --------------------------------------------------
def test_delete_and_restore_father(db, admin, family, married_pair, make_member):
    x, mother = married_pair(family, father_name="X")
    a = make_member(family, "A", Gender.MALE, 2, father_id=x.id, mother_id=mother.id)
    b = make_member(family, "B", Gender.FEMALE, 2, father_id=x.id, mother_id=mother.id)

    member_service.delete_member(db, family.id, x.id, admin.id)

    x, a, b, mother = (_reload(db, m) for m in (x, a, b, mother))
    assert x.is_deleted is True
    assert a.father_id is None
    assert b.father_id is None
    assert a.mother_id == mother.id
    assert mother.spouse_id is None
    assert set(x.deleted_data["childrenAsFather"]) == {a.id, b.id}

    # B gets another father in the meantime
    other = make_member(family, "Other", Gender.MALE, 1)
    b.father_id = other.id
    db.commit()

    member_service.restore_member(db, family.id, x.id, admin.id)

    x, a, b, mother = (_reload(db, m) for m in (x, a, b, mother))
    assert x.is_deleted is False
    assert a.father_id == x.id
    assert b.father_id == other.id
    assert x.spouse_id == mother.id
    assert mother.spouse_id == x.id


def test_restore_skips_spouse_who_remarried(db, admin, family, married_pair, make_member):
    father, mother = married_pair(family)
    member_service.delete_member(db, family.id, father.id, admin.id)

    second = make_member(family, "Second", Gender.MALE, 1)
    member_service.update_member(db, family.id, mother.id, admin.id, {"spouse_id": second.id})

    member_service.restore_member(db, family.id, father.id, admin.id)

    father, mother = _reload(db, father), _reload(db, mother)
    assert father.spouse_id is None
    assert mother.spouse_id == second.id


def test_deleting_mother_clears_mother_links(db, admin, family, married_pair, make_member):
    father, mother = married_pair(family)
    kid = make_member(family, "Kid", Gender.MALE, 2, father_id=father.id, mother_id=mother.id)

    member_service.delete_member(db, family.id, mother.id, admin.id)

    kid = _reload(db, kid)
    assert kid.mother_id is None
    assert kid.father_id == father.id


def test_deleting_twice_conflicts(db, admin, family, make_member):
    member = make_member(family, "Solo")
    member_service.delete_member(db, family.id, member.id, admin.id)

    with pytest.raises(ConflictError):
        member_service.delete_member(db, family.id, member.id, admin.id)


def test_deleted_members_are_hidden_and_listed_separately(db, admin, family, make_member):
    keep = make_member(family, "Keep")
    gone = make_member(family, "Gone")
    member_service.delete_member(db, family.id, gone.id, admin.id)

    visible = member_service.get_family_members(db, family.id, admin.id)
    deleted = member_service.get_deleted_members(db, family.id, admin.id)

    assert [m["id"] for m in visible] == [keep.id]
    assert [m["id"] for m in deleted] == [gone.id]
    with pytest.raises(NotFoundError):
        member_service.get_member_by_id(db, family.id, gone.id, admin.id)


def test_permanent_delete_needs_soft_delete_first(db, admin, family, married_pair, make_member):
    father, mother = married_pair(family)
    kid = make_member(family, "Kid", Gender.MALE, 2, father_id=father.id, mother_id=mother.id)

    with pytest.raises(NotFoundError):
        member_service.permanently_delete_member(db, family.id, mother.id, admin.id)

    member_service.delete_member(db, family.id, mother.id, admin.id)
    member_service.permanently_delete_member(db, family.id, mother.id, admin.id)

    db.expire_all()
    assert db.query(FamilyMember).filter(FamilyMember.id == mother.id).first() is None
    assert _reload(db, kid).mother_id is None


def test_permanent_delete_purges_achievements_and_addresses(db, admin, family, make_member):
    grandpa = make_member(family, "Grandpa")
    db.add_all([
        MemberAchievement(member_id=grandpa.id, title="Medal", category="MILITARY", achieved_at=date(1975, 4, 30)),
        Address(member_id=grandpa.id, label="home", line="12 Le Loi"),
    ])
    db.commit()

    member_service.delete_member(db, family.id, grandpa.id, admin.id)
    member_service.permanently_delete_member(db, family.id, grandpa.id, admin.id)

    db.expire_all()
    assert db.query(MemberAchievement).count() == 0
    assert db.query(Address).count() == 0


def test_restore_drops_parents_that_no_longer_exist(db, admin, family, married_pair, make_member):
    father, mother = married_pair(family)
    kid = make_member(family, "Kid", Gender.MALE, 2, father_id=father.id, mother_id=mother.id)

    member_service.delete_member(db, family.id, kid.id, admin.id)
    member_service.delete_member(db, family.id, mother.id, admin.id)
    member_service.delete_member(db, family.id, father.id, admin.id)
    member_service.permanently_delete_member(db, family.id, father.id, admin.id)

    member_service.restore_member(db, family.id, kid.id, admin.id)

    restored = _reload(db, kid)
    assert restored.father_id is None
    # Soft-deleted parent rows still exist and come back
    assert restored.mother_id == mother.id


# --------------------------------------------------
# LINKING / READS
# --------------------------------------------------
def test_is_me_links_the_creator_once(db, admin, family):
    me = member_service.create_member(
        db, family.id, admin.id,
        {"name": "Admin", "gender": Gender.MALE, "generation": 1, "is_me": True},
    )
    assert me.linked_user_id == admin.id
    assert me.is_verified is True

    with pytest.raises(ValidationError, match="already linked"):
        member_service.create_member(
            db, family.id, admin.id,
            {"name": "Admin Again", "gender": Gender.MALE, "generation": 1, "is_me": True},
        )


def test_member_detail_has_relatives_and_order(db, admin, family, married_pair, make_member):
    father, mother = married_pair(family)
    older = make_member(
        family, "Older", Gender.MALE, 2,
        father_id=father.id, mother_id=mother.id, birth_date=date(1990, 1, 1),
    )
    younger = make_member(
        family, "Younger", Gender.FEMALE, 2,
        father_id=father.id, mother_id=mother.id, birth_date=date(1995, 6, 1),
    )

    detail = member_service.get_member_by_id(db, family.id, younger.id, admin.id)

    assert detail["father"]["id"] == father.id
    assert detail["mother"]["id"] == mother.id
    assert [s["id"] for s in detail["siblings"]] == [older.id]
    assert detail["my_order"] == 2
    assert detail["total_siblings"] == 2

    parent = member_service.get_member_by_id(db, family.id, father.id, admin.id)
    assert {c["id"] for c in parent["children"]} == {older.id, younger.id}
    assert parent["spouse"]["id"] == mother.id


def test_member_list_filters(db, admin, family, make_member):
    make_member(family, "Alive Man", Gender.MALE, 1)
    dead = make_member(family, "Late Woman", Gender.FEMALE, 1, death_date=date(2001, 1, 1))
    make_member(family, "Young Man", Gender.MALE, 2)

    deceased = member_service.get_family_members(db, family.id, admin.id, status="deceased")
    gen2 = member_service.get_family_members(db, family.id, admin.id, generation=2)
    search = member_service.get_family_members(db, family.id, admin.id, search="woman")

    assert [m["id"] for m in deceased] == [dead.id]
    assert [m["name"] for m in gen2] == ["Young Man"]
    assert [m["id"] for m in search] == [dead.id]


def test_yearly_report_counts_window(db, admin, family, make_member):
    make_member(family, "Born 2000", birth_date=date(2000, 3, 1))
    make_member(family, "Born 2010", birth_date=date(2010, 3, 1), death_date=date(2020, 1, 1))

    report = member_service.get_yearly_report(db, family.id, admin.id, year=2000)
    assert report["period"] == {"year": 2000}
    assert report["summary"]["births"] == 1
    assert report["summary"]["deaths"] == 0

    everything = member_service.get_yearly_report(db, family.id, admin.id)
    assert everything["summary"]["births"] == 2
    assert everything["summary"]["deaths"] == 1
    assert everything["summary"]["living_members"] == 1


def test_outsider_cannot_read_members(db, family, make_user):
    outsider = make_user(name="Outsider")

    with pytest.raises(NotFoundError, match="access denied"):
        member_service.get_family_members(db, family.id, outsider.id)


# --------------------------------------------------
# ACHIEVEMENTS
# --------------------------------------------------
def test_achievement_notifies_other_family_users(db, admin, family, make_user, make_member, notifier):
    relative = make_user(name="Relative")
    family.users.append(relative)
    db.commit()
    member = make_member(family, "Star")

    achievement = member_service.create_member_achievement(
        db, family.id, member.id, admin.id,
        {"title": "Marathon", "category": "SPORTS", "achieved_at": date(2023, 5, 1)},
        notifier=notifier,
    )

    assert achievement["title"] == "Marathon"
    assert [a["id"] for a in member_service.get_member_achievements(db, family.id, member.id, admin.id)] == [
        achievement["id"]
    ]

    sent = db.query(Notification).all()
    assert [n.user_id for n in sent] == [relative.id]
    assert sent[0].data["memberId"] == member.id
